"""
Loading-stage progress of a refresh cycle.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

__all__ = ["Stage", "Progress", "ProgressTracker"]


class Stage(str, Enum):
    IDLE = "idle"
    SOURCES = "sources"
    TAGS = "tags"
    MANIFESTS = "manifests"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Progress:
    stage: Stage = Stage.IDLE
    completed: int = 0
    total: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0 if self.stage == Stage.DONE else 0.0
        return min(100.0, 100.0 * self.completed / self.total)

    @property
    def running(self) -> bool:
        return self.stage not in (Stage.IDLE, Stage.DONE, Stage.FAILED)


class ProgressTracker:
    """
    Holds the current ``Progress`` and notifies listeners on every change.

    ``completed`` only grows between ``start`` calls.
    """

    def __init__(self) -> None:
        self._progress = Progress()
        self._listeners: List[Callable[[Progress], None]] = []

    @property
    def current(self) -> Progress:
        return self._progress

    def subscribe(self, listener: Callable[[Progress], None]) -> None:
        self._listeners.append(listener)

    def _set(self, progress: Progress) -> None:
        self._progress = progress
        for listener in self._listeners:
            listener(progress)

    def start(self, stage: Stage = Stage.SOURCES, total: int = 0) -> None:
        self._set(Progress(stage=stage, completed=0, total=total))

    def stage(self, stage: Stage, total: Optional[int] = None) -> None:
        current = self._progress
        self._set(Progress(stage=stage, completed=current.completed,
                           total=current.total if total is None else max(total, current.total)))

    def advance(self, count: int = 1) -> None:
        current = self._progress
        completed = min(current.completed + max(count, 0), current.total)
        self._set(Progress(stage=current.stage, completed=completed, total=current.total))

    def finish(self) -> None:
        current = self._progress
        self._set(Progress(stage=Stage.DONE, completed=current.total, total=current.total))

    def fail(self) -> None:
        current = self._progress
        self._set(Progress(stage=Stage.FAILED, completed=current.completed, total=current.total))
