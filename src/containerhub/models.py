"""
Value models for the registry dashboard.

These Pydantic models are the denormalized, persisted view of the registry
object graph: configured sources with their health, per-repository aggregates
and per-repository tag details. All of them are frozen; updates produce new
instances.
"""
from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .settings import SourceConfig


# ---------------------------------------------------------------------------
# Source health
# ---------------------------------------------------------------------------

class _StatusBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    @abstractmethod
    def code(self) -> int:
        """Legacy integer form: -1 unknown, 0 unreachable, 408 timed out."""

    @property
    def is_healthy(self) -> bool:
        return False


class Unknown(_StatusBase):
    """Not probed yet."""
    kind: Literal["unknown"] = "unknown"

    @property
    def code(self) -> int:
        return -1


class Reachable(_StatusBase):
    """The registry answered ``GET /v2/`` with some HTTP status."""
    kind: Literal["reachable"] = "reachable"
    http_status: int

    @property
    def code(self) -> int:
        return self.http_status

    @property
    def is_healthy(self) -> bool:
        return 200 <= self.http_status < 300


class TimedOut(_StatusBase):
    kind: Literal["timed_out"] = "timed_out"

    @property
    def code(self) -> int:
        return 408


class Unreachable(_StatusBase):
    kind: Literal["unreachable"] = "unreachable"

    @property
    def code(self) -> int:
        return 0


SourceStatus = Annotated[
    Union[Unknown, Reachable, TimedOut, Unreachable],
    Field(discriminator="kind"),
]


class Source(BaseModel):
    """
    A configured registry endpoint as shown to the user.

    Credentials never live here; this model is persisted.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    host: str
    status: SourceStatus = Field(default_factory=Unknown)
    last_checked: Optional[datetime] = None

    @classmethod
    def from_config(cls, config: SourceConfig) -> Source:
        return cls(name=config.name, path=config.url, host=config.host)

    def with_status(self, status: SourceStatus, checked_at: datetime) -> Source:
        return self.model_copy(update={"status": status, "last_checked": checked_at})


# ---------------------------------------------------------------------------
# Repository aggregates
# ---------------------------------------------------------------------------

def full_name(namespace: Optional[str], name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


def split_full_name(value: str) -> Tuple[Optional[str], str]:
    """Split a catalog entry on its last ``/`` into (namespace, name)."""
    namespace, sep, name = value.rpartition("/")
    return (namespace if sep else None), name


def repository_key(source: str, namespace: Optional[str], name: str) -> str:
    return f"{source}:{full_name(namespace, name)}"


class RepositoryMeta(BaseModel):
    """
    Summary row for one repository.

    ``total_size``, ``architectures`` and ``last_updated`` are computed from
    ``sampled_tags`` only (the first tags in listing order), so they are
    approximate for repositories with more tags than the sample size.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    namespace: Optional[str] = None
    name: str
    tag_count: int = 0
    total_size: int = 0
    architectures: List[str] = Field(default_factory=list)
    last_updated: Optional[datetime] = None
    sampled_tags: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def full_name(self) -> str:
        return full_name(self.namespace, self.name)

    @computed_field
    @property
    def key(self) -> str:
        return repository_key(self.source, self.namespace, self.name)

    @computed_field
    @property
    def untagged(self) -> bool:
        return self.tag_count == 0


class ImageSummary(BaseModel):
    """One platform image of a tag."""
    model_config = ConfigDict(frozen=True)

    digest: str
    architecture: Optional[str] = None
    os: Optional[str] = None
    variant: Optional[str] = None
    size: int = 0
    created: Optional[datetime] = None

    @property
    def platform(self) -> str:
        parts = [self.os or "unknown", self.architecture or "unknown"]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)


class TagDetail(BaseModel):
    """A tag with its resolved manifest and images."""
    model_config = ConfigDict(frozen=True)

    name: str
    digest: str
    digest_source: str = "header"
    media_type: str
    multi_platform: bool = False
    total_size: int = 0
    images: List[ImageSummary] = Field(default_factory=list)

    @property
    def architectures(self) -> List[str]:
        return sorted({image.architecture for image in self.images if image.architecture})

    @property
    def last_updated(self) -> Optional[datetime]:
        created = [image.created for image in self.images if image.created]
        return max(created) if created else None


class RepositoryDetail(BaseModel):
    """
    Every tag of one repository, fetched on demand.

    ``tags`` holds the tags that could be summarized. ``tag_names`` is the full
    registry listing, failed tags included; None means ``tags`` is complete.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    namespace: Optional[str] = None
    name: str
    tags: List[TagDetail] = Field(default_factory=list)
    tag_names: Optional[List[str]] = None
    fetched_at: datetime

    @computed_field
    @property
    def full_name(self) -> str:
        return full_name(self.namespace, self.name)

    @computed_field
    @property
    def key(self) -> str:
        return repository_key(self.source, self.namespace, self.name)

    @property
    def tag_count(self) -> int:
        if self.tag_names is not None:
            return len(self.tag_names)
        return len(self.tags)

    @property
    def total_size(self) -> int:
        return sum(tag.total_size for tag in self.tags)

    @property
    def architectures(self) -> List[str]:
        return sorted({arch for tag in self.tags for arch in tag.architectures})

    @property
    def last_updated(self) -> Optional[datetime]:
        updated = [tag.last_updated for tag in self.tags if tag.last_updated]
        return max(updated) if updated else None

    def tag(self, name: str) -> Optional[TagDetail]:
        for tag in self.tags:
            if tag.name == name:
                return tag
        return None


__all__ = [
    "Unknown",
    "Reachable",
    "TimedOut",
    "Unreachable",
    "SourceStatus",
    "Source",
    "RepositoryMeta",
    "ImageSummary",
    "TagDetail",
    "RepositoryDetail",
    "full_name",
    "split_full_name",
    "repository_key",
]
