"""
Persisted store snapshot.

The whole dashboard state is one ``Snapshot`` serialized as JSON under a fixed
file name. It is restored before any network fetch and rewritten atomically
after every refresh or mutation.
"""
from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models import RepositoryDetail, RepositoryMeta, Source

__all__ = ["Snapshot", "SnapshotStore", "STORAGE_NAME"]

logger = logging.getLogger(__name__)

STORAGE_NAME = "containerhub-state.json"


class Snapshot(BaseModel):
    """Everything the dashboard shows, as of the last completed refresh."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    repository_metas: List[RepositoryMeta] = Field(default_factory=list, alias="repositoryMetas")
    repository_details: Dict[str, RepositoryDetail] = Field(default_factory=dict, alias="repositoryDetails")
    sources: Dict[str, Source] = Field(default_factory=dict)
    status_codes: Dict[str, str] = Field(default_factory=dict, alias="statusCodes")
    last_fetch: Optional[datetime] = Field(default=None, alias="lastFetch")
    available_architectures: List[str] = Field(default_factory=list, alias="availableArchitectures")

    def meta(self, key: str) -> Optional[RepositoryMeta]:
        for meta in self.repository_metas:
            if meta.key == key:
                return meta
        return None

    def metas_by_key(self) -> Dict[str, RepositoryMeta]:
        return {meta.key: meta for meta in self.repository_metas}


class SnapshotStore:
    """JSON file mirror of the snapshot."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def in_dir(cls, directory: Path) -> SnapshotStore:
        return cls(Path(directory) / STORAGE_NAME)

    def load(self) -> Snapshot:
        """
        Restore the snapshot.

        A missing file yields an empty snapshot; an unreadable or corrupt one
        is logged and ignored.
        """
        if not self.path.exists():
            return Snapshot()
        try:
            return Snapshot.model_validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable snapshot {self.path}: {e}")
            return Snapshot()

    def save(self, snapshot: Snapshot) -> None:
        """Write the snapshot atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = snapshot.model_dump_json(by_alias=True, indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=".containerhub-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Saved snapshot to {self.path}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
