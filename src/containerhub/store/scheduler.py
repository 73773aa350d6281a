"""
Periodic background refresh.

A ``Scheduler`` owns its timer tasks: create one per store with
``RegistryStore.start_scheduler()`` and stop it with ``dispose()``. Timers
only fire refreshes while the view is visible, and becoming visible again
triggers an immediate light refresh.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Set

from ..registry.errors import RegistryError
from .errors import StoreError

if TYPE_CHECKING:
    from .store import RegistryStore

__all__ = ["Scheduler"]

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Light refresh every ``light_interval_s``, full refresh every
    ``full_interval_s``, both gated on visibility.
    """

    def __init__(self, store: RegistryStore, *, light_interval_s: float, full_interval_s: float,
                 visible: bool = True):
        self.store = store
        self.light_interval_s = light_interval_s
        self.full_interval_s = full_interval_s
        self._visible = visible
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._disposed = False

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def running(self) -> bool:
        return self._started and not self._disposed

    def start(self) -> Scheduler:
        """
        Start both timers on the running event loop.

        Raises:
            RuntimeError: If already started or disposed
        """
        if self._started or self._disposed:
            raise RuntimeError("Scheduler can only be started once")
        self._started = True
        self._spawn(self._every(self.light_interval_s, self._light, "light"))
        self._spawn(self._every(self.full_interval_s, self._full, "full"))
        logger.debug(f"Scheduler started (light every {self.light_interval_s}s, "
                     f"full every {self.full_interval_s}s)")
        return self

    def set_visible(self, visible: bool) -> None:
        """Record visibility; hidden -> visible runs a light refresh right away."""
        became_visible = visible and not self._visible
        self._visible = visible
        if became_visible and self.running:
            logger.debug("Became visible, refreshing")
            self._spawn(self._run(self._light, "light"))

    async def dispose(self) -> None:
        """Cancel every timer and in-flight refresh started by this scheduler."""
        self._disposed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.debug("Scheduler disposed")

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _every(self, interval: float, job: Callable[[], Awaitable[object]], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._visible:
                await self._run(job, name)

    async def _run(self, job: Callable[[], Awaitable[object]], name: str) -> None:
        try:
            await job()
        except (StoreError, RegistryError) as e:
            logger.warning(f"Scheduled {name} refresh failed: {e}")

    async def _light(self) -> object:
        return await self.store.light_refresh()

    async def _full(self) -> object:
        return await self.store.full_refresh()
