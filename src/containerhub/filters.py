"""
Repository list filtering.

Mirrors the dashboard filter bar: free-text search, architecture, a set of
sources and whether untagged repositories are shown.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Tuple

from .models import RepositoryMeta, Source

__all__ = ["RepositoryFilter", "filter_repositories"]

ALL_ARCHITECTURES = "all"


@dataclass(frozen=True)
class RepositoryFilter:
    """
    Filter state.

    ``sources`` holds display hosts or source names; empty means every source.
    """
    search: str = ""
    architecture: str = ALL_ARCHITECTURES
    sources: Tuple[str, ...] = ()
    show_untagged: bool = False

    def matches(self, meta: RepositoryMeta, sources: Mapping[str, Source]) -> bool:
        if self.search and self.search.strip().lower() not in meta.full_name.lower():
            return False
        if self.architecture != ALL_ARCHITECTURES and self.architecture not in meta.architectures:
            return False
        if self.sources:
            source = sources.get(meta.source)
            host = source.host if source else "Unknown"
            if host not in self.sources and meta.source not in self.sources:
                return False
        if not self.show_untagged and meta.untagged:
            return False
        return True


def filter_repositories(metas: Iterable[RepositoryMeta], repository_filter: RepositoryFilter,
                        sources: Mapping[str, Source]) -> List[RepositoryMeta]:
    return [meta for meta in metas if repository_filter.matches(meta, sources)]
