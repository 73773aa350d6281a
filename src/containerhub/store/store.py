"""
Registry store: fetch orchestration and client-side cache.

Drives the registry object model across every configured source, bounds
concurrency with sequential waves, aggregates per-repository summaries from a
sample of tags, and mirrors the result to a JSON snapshot on disk.

Refresh flavors:
- full: catalog, tag lists, and manifests of the sampled tags
- light: catalog and tag lists only; summaries of repositories whose sampled
  tags are unchanged are reused, only new or changed ones are resampled

Every refresh replaces the snapshot as a whole; the last one to finish wins.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from ..filters import RepositoryFilter, filter_repositories
from ..models import RepositoryDetail, RepositoryMeta, Source, TagDetail, repository_key
from ..registry.errors import CatalogFetchError, NetworkUnavailable, RegistryError
from ..registry.http import RegistryHTTP, create_client
from ..registry.objects import CONTENT_DIGEST_SOURCES, Registry, Repository, Tag
from ..settings import Settings
from ..status_codes import load_status_codes
from .aggregate import build_repository_meta, summarize_tag
from .batching import run_in_batches
from .errors import NoReachableRegistries, NoSourcesConfigured, StoreError
from .progress import Progress, ProgressTracker, Stage
from .reducers import (
    apply_repository_deletion,
    apply_repository_detail,
    apply_tags_deletion,
    collect_architectures,
)
from .scheduler import Scheduler
from .snapshot import Snapshot, SnapshotStore

__all__ = ["RegistryStore", "DeleteReport"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeleteReport:
    """Outcome of a bulk tag deletion."""
    requested: Tuple[str, ...]
    deleted: Tuple[str, ...] = ()
    failed: Tuple[str, ...] = ()
    absent: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def message(self) -> str:
        message = f"{len(self.deleted)} of {len(self.requested)} tags deleted"
        if self.absent:
            message += f", {len(self.absent)} not found"
        return message


@dataclass
class _SourceSurvey:
    source: Source
    repositories: Optional[List[Repository]] = None
    error: Optional[RegistryError] = None


@dataclass
class _Listed:
    repository: Repository
    tags: List[Tag] = field(default_factory=list)

    @property
    def key(self) -> str:
        return repository_key(self.repository.registry.name, self.repository.namespace, self.repository.name)


class RegistryStore:
    """
    Long-lived owner of the dashboard state.

    Use as an async context manager; it owns the shared HTTP client::

        async with RegistryStore(settings) as store:
            metas = await store.full_refresh()
    """

    def __init__(self, settings: Settings, *,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 snapshot_store: Optional[SnapshotStore] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the store and restore the persisted snapshot.

        Args:
            settings: Sources and tuning
            transport: Optional HTTP transport override (tests)
            snapshot_store: Snapshot persistence (defaults to ``settings.state_dir``)
            clock: Source of "now" (defaults to UTC wall clock)
        """
        self.settings = settings
        self._transport = transport
        self._clock = clock or _utcnow
        self._snapshot_store = snapshot_store or SnapshotStore.in_dir(settings.state_dir)
        self._client: Optional[httpx.AsyncClient] = None
        self._registries: Dict[str, Registry] = {}
        self.progress = ProgressTracker()
        self.last_error: Optional[str] = None
        self._snapshot = self._restore(self._snapshot_store.load())

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> RegistryStore:
        self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def open(self) -> None:
        """Create the HTTP client and one ``Registry`` per configured source."""
        if self._client is not None:
            return
        self._client = create_client(self.settings, self._transport)
        self._registries = {
            config.name: Registry(
                config,
                RegistryHTTP(config, self._client, retries=self.settings.http_retry),
                digest_fallback=self.settings.digest_fallback,
            )
            for config in self.settings.sources
        }

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._registries = {}

    def _restore(self, snapshot: Snapshot) -> Snapshot:
        """
        Reconcile the persisted snapshot with the configured sources.

        Sources no longer configured, or whose URL changed, lose their cached
        repositories.
        """
        sources: Dict[str, Source] = {}
        for config in self.settings.sources:
            previous = snapshot.sources.get(config.name)
            if previous is not None and previous.path == config.url:
                sources[config.name] = previous.model_copy(update={"host": config.host})
            else:
                sources[config.name] = Source.from_config(config)

        metas = [meta for meta in snapshot.repository_metas if meta.source in sources]
        details = {k: v for k, v in snapshot.repository_details.items() if v.source in sources}
        status_codes = snapshot.status_codes or load_status_codes(self.settings.status_codes_path)
        return snapshot.model_copy(update={
            "sources": sources,
            "repository_metas": metas,
            "repository_details": details,
            "status_codes": status_codes,
            "available_architectures": collect_architectures(metas),
        })

    def _commit(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        self._snapshot_store.save(snapshot)

    # ------------------------------------------------------------------
    # state accessors
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def sources(self) -> Dict[str, Source]:
        return self._snapshot.sources

    @property
    def status_codes(self) -> Dict[str, str]:
        return self._snapshot.status_codes

    @property
    def available_architectures(self) -> List[str]:
        return self._snapshot.available_architectures

    @property
    def current_progress(self) -> Progress:
        return self.progress.current

    def repositories(self, repository_filter: Optional[RepositoryFilter] = None) -> List[RepositoryMeta]:
        metas = self._snapshot.repository_metas
        if repository_filter is None:
            return list(metas)
        return filter_repositories(metas, repository_filter, self.sources)

    def is_fresh(self) -> bool:
        last_fetch = self._snapshot.last_fetch
        if last_fetch is None:
            return False
        return (self._clock() - last_fetch).total_seconds() < self.settings.cache_ttl_s

    def registry(self, source: str) -> Registry:
        """
        Raises:
            ValueError: If ``source`` is not configured
        """
        self.open()
        if source not in self._registries:
            raise ValueError(f"Unknown source: {source}")
        return self._registries[source]

    def repository(self, source: str, namespace: Optional[str], name: str) -> Repository:
        return self.registry(source).repository(namespace, name)

    # ------------------------------------------------------------------
    # refresh cycles
    # ------------------------------------------------------------------

    async def check_sources(self) -> Dict[str, Source]:
        """Probe every configured source (``GET /v2/``) and record its health."""
        self.open()
        registries = list(self._registries.values())
        statuses = await asyncio.gather(*(registry.ping() for registry in registries))
        now = self._clock()
        sources = dict(self._snapshot.sources)
        for registry, status in zip(registries, statuses):
            previous = sources.get(registry.name) or Source.from_config(registry.config)
            sources[registry.name] = previous.with_status(status, now)
        self._commit(self._snapshot.model_copy(update={"sources": sources}))
        return sources

    async def full_refresh(self, force: bool = False) -> List[RepositoryMeta]:
        """
        Re-list every source and resample every tagged repository.

        Skipped (cached list returned, no network) when the last full refresh
        finished less than ``cache_ttl_s`` ago, unless ``force``.

        Raises:
            NoSourcesConfigured: If no source is configured
            NoReachableRegistries: If every catalog request failed
        """
        if not force and self.is_fresh():
            logger.debug("Full refresh skipped, cache is fresh")
            return self.repositories()
        return await self._refresh(light=False)

    async def light_refresh(self) -> List[RepositoryMeta]:
        """
        Re-list catalogs and tags, reusing cached summaries where the sampled
        tags did not change.

        Raises:
            NoSourcesConfigured: If no source is configured
            NoReachableRegistries: If every catalog request failed
        """
        return await self._refresh(light=True)

    async def _refresh(self, light: bool) -> List[RepositoryMeta]:
        kind = "light" if light else "full"
        self.open()
        self.progress.start(Stage.SOURCES)
        try:
            if not self._registries:
                raise NoSourcesConfigured("No registry sources configured")

            surveys = await asyncio.gather(*(self._survey(r) for r in self._registries.values()))
            sources = {survey.source.name: survey.source for survey in surveys}
            reachable = [s for s in surveys if s.repositories is not None]
            if not reachable:
                self._commit(self._snapshot.model_copy(update={"sources": sources}))
                errors = "; ".join(f"{s.source.name}: {s.error}" for s in surveys)
                raise NoReachableRegistries(f"No reachable registries ({errors})")

            repositories = [repo for survey in reachable for repo in survey.repositories]
            self.progress.stage(Stage.TAGS, total=2 * len(repositories))
            listed, unlisted = await self._list_tags(repositories)

            self.progress.stage(Stage.MANIFESTS)
            self.progress.advance(len(unlisted))
            fresh = await self._summarize(listed, reuse=light)

            # sources whose catalog failed, and repositories whose tags failed, keep their previous rows
            failed_sources = {s.source.name for s in surveys if s.repositories is None}
            stale = [meta for meta in self._snapshot.repository_metas
                     if meta.source in failed_sources or meta.key in unlisted]
            metas = fresh + stale
            keys = {meta.key for meta in metas}

            self.progress.stage(Stage.PERSISTING)
            update = {
                "sources": sources,
                "repository_metas": metas,
                "repository_details": {k: v for k, v in self._snapshot.repository_details.items() if k in keys},
                "available_architectures": collect_architectures(metas),
            }
            if not light:
                update["last_fetch"] = self._clock()
            self._commit(self._snapshot.model_copy(update=update))
        except StoreError as e:
            self.last_error = str(e)
            self.progress.fail()
            logger.error(f"{kind.capitalize()} refresh failed: {e}")
            raise

        self.last_error = None
        self.progress.finish()
        logger.info(f"{kind.capitalize()} refresh done: {len(metas)} repositories from {len(reachable)} sources")
        return self.repositories()

    async def _survey(self, registry: Registry) -> _SourceSurvey:
        """List a source's catalog and probe its health concurrently."""
        previous = self._snapshot.sources.get(registry.name) or Source.from_config(registry.config)
        catalog, status = await asyncio.gather(
            registry.list_repositories(), registry.ping(), return_exceptions=True
        )
        if isinstance(status, BaseException):
            raise status
        source = previous.with_status(status, self._clock())
        if isinstance(catalog, CatalogFetchError):
            logger.error(f"Catalog of source {registry.name} unavailable: {catalog}")
            return _SourceSurvey(source, error=catalog)
        if isinstance(catalog, BaseException):
            raise catalog
        return _SourceSurvey(source, repositories=catalog)

    async def _list_tags(self, repositories: Sequence[Repository]) -> Tuple[List[_Listed], List[str]]:
        """
        Fetch tag lists in waves.

        Returns:
            (listed repositories, keys of repositories whose listing failed)
        """
        results = await run_in_batches(
            repositories, self.settings.batch_size, lambda repo: repo.tags(), on_batch=self.progress.advance
        )
        listed: List[_Listed] = []
        failed: List[str] = []
        for repository, result in zip(repositories, results):
            entry = _Listed(repository)
            if isinstance(result, RegistryError):
                logger.warning(f"Tags of {repository.registry.name}/{repository.full_name} unavailable: {result}")
                failed.append(entry.key)
                continue
            entry.tags = result
            listed.append(entry)
        return listed, failed

    async def _summarize(self, listed: Sequence[_Listed], reuse: bool) -> List[RepositoryMeta]:
        """
        Build one summary per listed repository.

        With ``reuse``, a repository whose sampled tags match the cached
        summary keeps its aggregates and only gets a new tag count.
        """
        sample_size = self.settings.sample_size
        previous = self._snapshot.metas_by_key()
        metas: Dict[str, RepositoryMeta] = {}
        pending: List[_Listed] = []

        for entry in listed:
            repo = entry.repository
            if not entry.tags:
                metas[entry.key] = build_repository_meta(repo.registry.name, repo.namespace, repo.name, 0, [])
                continue
            cached = previous.get(entry.key)
            sample = [tag.name for tag in entry.tags[:sample_size]]
            if reuse and cached is not None and cached.sampled_tags == sample:
                metas[entry.key] = cached.model_copy(update={"tag_count": len(entry.tags)})
                continue
            pending.append(entry)

        # untagged and reused rows need no manifest wave
        self.progress.advance(len(listed) - len(pending))

        results = await run_in_batches(
            pending, self.settings.batch_size, self._sample, on_batch=self.progress.advance
        )
        for entry, result in zip(pending, results):
            metas[entry.key] = result

        order = [entry.key for entry in listed]
        return [metas[key] for key in order]

    async def _sample(self, entry: _Listed) -> RepositoryMeta:
        """Summarize the first ``sample_size`` tags; failed tags are left out."""
        repo = entry.repository
        sample = entry.tags[:self.settings.sample_size]
        results = await asyncio.gather(*(summarize_tag(tag) for tag in sample), return_exceptions=True)
        details: List[TagDetail] = []
        for tag, result in zip(sample, results):
            if isinstance(result, RegistryError):
                logger.warning(f"Skipping tag {repo.full_name}:{tag.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            details.append(result)
        return build_repository_meta(repo.registry.name, repo.namespace, repo.name, len(entry.tags), details)

    # ------------------------------------------------------------------
    # repository detail
    # ------------------------------------------------------------------

    async def repository_detail(self, source: str, namespace: Optional[str], name: str,
                                force: bool = False) -> RepositoryDetail:
        """
        Fetch every tag of one repository.

        A cached detail younger than ``cache_ttl_s`` is returned as is unless
        ``force``. Otherwise tags whose digest is unchanged (HEAD with
        ``If-None-Match``) reuse their cached detail; the rest are fetched in
        waves of ``detail_batch_size``.

        Raises:
            ValueError: If ``source`` is unknown
            TagsFetchError: If the tag list cannot be fetched
        """
        key = repository_key(source, namespace, name)
        cached = self._snapshot.repository_details.get(key)
        if cached is not None and not force:
            age = (self._clock() - cached.fetched_at).total_seconds()
            if age < self.settings.cache_ttl_s:
                return cached

        repository = self.repository(source, namespace, name)
        tags = await repository.tags()
        known = {tag.name: tag for tag in cached.tags} if cached is not None else {}

        async def detail_for(tag: Tag) -> TagDetail:
            previous = known.get(tag.name)
            if previous is not None and previous.digest_source in CONTENT_DIGEST_SOURCES:
                try:
                    if await tag.is_up_to_date(previous.digest):
                        return previous
                except NetworkUnavailable as e:
                    logger.debug(f"Freshness check failed for {repository.full_name}:{tag.name}: {e}")
            return await summarize_tag(tag)

        results = await run_in_batches(tags, self.settings.detail_batch_size, detail_for)
        details: List[TagDetail] = []
        for tag, result in zip(tags, results):
            if isinstance(result, RegistryError):
                logger.warning(f"Skipping tag {repository.full_name}:{tag.name}: {result}")
                continue
            details.append(result)

        detail = RepositoryDetail(
            source=source, namespace=namespace, name=name, tags=details,
            tag_names=[tag.name for tag in tags], fetched_at=self._clock(),
        )
        self._commit(apply_repository_detail(self._snapshot, detail))
        return detail

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    async def delete_tag(self, source: str, namespace: Optional[str], name: str, tag: str) -> bool:
        """Delete one tag; on success the cached state drops it."""
        report = await self.delete_tags(source, namespace, name, [tag])
        return report.ok

    async def delete_tags(self, source: str, namespace: Optional[str], name: str,
                          tags: Sequence[str]) -> DeleteReport:
        """
        Delete several tags, reporting partial success.

        The tag list is fetched once. Requested tags the registry does not
        list are reported as ``absent`` and leave the cached state untouched.

        Raises:
            ValueError: If ``source`` is unknown
            TagsFetchError: If the tag list cannot be fetched
        """
        repository = self.repository(source, namespace, name)
        listed = {tag.name: tag for tag in await repository.tags()}
        present = [tag for tag in tags if tag in listed]
        absent = tuple(tag for tag in tags if tag not in listed)
        if absent:
            logger.debug(f"{repository.full_name}: not listed, nothing to delete: {list(absent)}")

        results = await run_in_batches(present, self.settings.detail_batch_size, lambda t: listed[t].delete())
        deleted, failed = [], []
        for tag, result in zip(present, results):
            if result is True:
                deleted.append(tag)
            else:
                if isinstance(result, RegistryError):
                    logger.warning(f"Delete of {repository.full_name}:{tag} failed: {result}")
                failed.append(tag)

        if deleted:
            key = repository_key(source, namespace, name)
            self._commit(apply_tags_deletion(self._snapshot, key, deleted))
        report = DeleteReport(tuple(tags), tuple(deleted), tuple(failed), absent)
        logger.info(f"{repository.full_name}: {report.message}")
        return report

    async def delete_repository(self, source: str, namespace: Optional[str], name: str) -> bool:
        """
        Delete every tag of a repository; on full success it leaves the cache.

        Raises:
            ValueError: If ``source`` is unknown
        """
        repository = self.repository(source, namespace, name)
        try:
            ok = await repository.delete()
        except RegistryError as e:
            logger.warning(f"Delete of repository {repository.full_name} failed: {e}")
            return False
        if ok:
            self._commit(apply_repository_deletion(self._snapshot, repository_key(source, namespace, name)))
        return ok

    # ------------------------------------------------------------------
    # background refresh
    # ------------------------------------------------------------------

    def start_scheduler(self, visible: bool = True) -> Scheduler:
        """Start periodic refreshes; the caller owns the returned ``Scheduler``."""
        return Scheduler(
            self,
            light_interval_s=self.settings.light_refresh_interval_s,
            full_interval_s=self.settings.full_refresh_interval_s,
            visible=visible,
        ).start()
