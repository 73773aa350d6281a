"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the registry store, centralizing
command orchestration and policy decisions (which source a bare repository
name refers to, when a refresh is needed) while keeping CLI commands thin
and testable.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..filters import RepositoryFilter
from ..models import RepositoryDetail, RepositoryMeta, Source, split_full_name
from ..store import DeleteReport, NoReachableRegistries, RegistryStore
from ..store.progress import Progress

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "default"


def parse_repository(ref: str) -> Tuple[Optional[str], str]:
    """
    Parse a repository reference into (namespace, name).

    Supports formats:
    - "name" -> (None, "name")
    - "team/app" -> ("team", "app")
    - "org/team/app" -> ("org/team", "app")

    Raises:
        ValueError: If ref is empty or carries a tag or digest
    """
    ref = ref.strip().strip("/")
    if not ref:
        raise ValueError(f"Invalid repository reference: {ref!r}")
    if ":" in ref or "@" in ref:
        raise ValueError(f"Repository reference must not carry a tag or digest: {ref}")
    return split_full_name(ref)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions to avoid scattered configuration.
    """
    force: bool = False           # Bypass cache freshness checks
    verbose: bool = False         # Show detailed output


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. The store is injected (tests pass one backed by
    a fake transport); exceptions bubble up for central exit-code mapping.
    """

    def __init__(self, config: OpsConfig, store: RegistryStore):
        self.cfg = config
        self.store = store

    @property
    def settings(self):
        return self.store.settings

    def resolve_source(self, source: Optional[str]) -> str:
        """
        Pick the source a repository reference refers to.

        An explicit name must be configured. Without one, a single configured
        source is used, then the ``default`` source.

        Raises:
            ValueError: If the source is unknown or the choice is ambiguous
        """
        if source:
            return self.settings.source(source).name
        names = [config.name for config in self.settings.sources]
        if len(names) == 1:
            return names[0]
        if DEFAULT_SOURCE in names:
            return DEFAULT_SOURCE
        if not names:
            raise ValueError("No registry sources configured")
        raise ValueError(f"Several sources configured ({', '.join(names)}); choose one with --source")

    async def sources(self) -> Dict[str, Source]:
        """Probe every source and return them with fresh health status."""
        return await self.store.check_sources()

    async def list_repositories(self, repository_filter: RepositoryFilter,
                                refresh: bool = False) -> List[RepositoryMeta]:
        """
        List repositories matching the filter.

        The cached snapshot is served when it is fresh and no refresh was
        requested; otherwise a full refresh runs first. When no registry is
        reachable the cached rows are still listed, with ``store.last_error`` set.
        """
        if refresh or self.cfg.force or not self.store.is_fresh():
            try:
                await self.store.full_refresh(force=self.cfg.force or refresh)
            except NoReachableRegistries:
                if not self.store.repositories():
                    raise
                logger.warning("No registry reachable, listing cached repositories")
        return self.store.repositories(repository_filter)

    async def show(self, repository: str, source: Optional[str] = None) -> RepositoryDetail:
        namespace, name = parse_repository(repository)
        return await self.store.repository_detail(
            self.resolve_source(source), namespace, name, force=self.cfg.force
        )

    async def refresh(self, light: bool = False) -> List[RepositoryMeta]:
        if light:
            return await self.store.light_refresh()
        return await self.store.full_refresh(force=self.cfg.force)

    async def delete_tags(self, repository: str, tags: Sequence[str],
                          source: Optional[str] = None) -> DeleteReport:
        """
        Delete tags of one repository.

        Raises:
            ValueError: If no tag is given or the reference is invalid
        """
        if not tags:
            raise ValueError("At least one tag is required")
        namespace, name = parse_repository(repository)
        return await self.store.delete_tags(self.resolve_source(source), namespace, name, list(tags))

    async def delete_repository(self, repository: str, source: Optional[str] = None) -> bool:
        namespace, name = parse_repository(repository)
        return await self.store.delete_repository(self.resolve_source(source), namespace, name)

    async def watch(self, duration: Optional[float] = None,
                    on_progress: Optional[Callable[[Progress], None]] = None) -> List[RepositoryMeta]:
        """
        Run an initial refresh, then the periodic scheduler.

        Args:
            duration: Seconds to keep watching (None runs until cancelled)
            on_progress: Listener for progress updates
        """
        if on_progress is not None:
            self.store.progress.subscribe(on_progress)
        await self.store.full_refresh(force=self.cfg.force)
        scheduler = self.store.start_scheduler()
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            await scheduler.dispose()
        logger.debug("Watch finished")
        return self.store.repositories()
