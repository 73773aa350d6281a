"""
Fetch orchestration and client-side cache for registry sources.
"""
from .errors import NoReachableRegistries, NoSourcesConfigured, StoreError
from .progress import Progress, ProgressTracker, Stage
from .scheduler import Scheduler
from .snapshot import Snapshot, SnapshotStore
from .store import DeleteReport, RegistryStore

__all__ = [
    "RegistryStore",
    "DeleteReport",
    "Scheduler",
    "Snapshot",
    "SnapshotStore",
    "Progress",
    "ProgressTracker",
    "Stage",
    "StoreError",
    "NoSourcesConfigured",
    "NoReachableRegistries",
]
