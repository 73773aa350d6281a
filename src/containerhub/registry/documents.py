"""
Wire documents of the Docker Registry HTTP API v2 / OCI distribution API.

Pydantic models for the JSON payloads the client reads: catalog and tag
listings, manifests (single image or index/list), descriptors and image
config blobs. Unknown fields are ignored so newer registries parse cleanly.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .media_types import ATTESTATION_MANIFEST, REFERENCE_TYPE_ANNOTATION

# Registries emit RFC 3339 timestamps with up to nanosecond precision
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: Any) -> Any:
    """Trim sub-microsecond digits so nanosecond timestamps validate."""
    if isinstance(value, str):
        if not value or value.startswith("0001-01-01"):
            return None
        return _FRACTION_RE.sub(r"\1", value)
    return value


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class CatalogDocument(_Document):
    repositories: List[str] = Field(default_factory=list)

    @field_validator("repositories", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value or []


class TagListDocument(_Document):
    name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        # registry returns "tags": null once every tag was deleted
        return value or []


class Platform(_Document):
    architecture: str = "unknown"
    os: str = "unknown"
    variant: Optional[str] = None
    os_version: Optional[str] = Field(default=None, alias="os.version")


class Descriptor(_Document):
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    digest: str
    size: int = 0
    platform: Optional[Platform] = None
    annotations: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_attestation(self) -> bool:
        if self.annotations.get(REFERENCE_TYPE_ANNOTATION) == ATTESTATION_MANIFEST:
            return True
        return self.platform is not None and (
            self.platform.os == "unknown" and self.platform.architecture == "unknown"
        )


class ManifestDocument(_Document):
    """Either an image manifest (config + layers) or an index (manifests)."""
    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    config: Optional[Descriptor] = None
    layers: List[Descriptor] = Field(default_factory=list)
    manifests: List[Descriptor] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)


class ConfigBlob(_Document):
    """Image configuration blob (``application/vnd.*.container.image.v1+json``)."""
    architecture: Optional[str] = None
    os: Optional[str] = None
    variant: Optional[str] = None
    created: Optional[datetime] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    history: List[Dict[str, Any]] = Field(default_factory=list)
    rootfs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("created", mode="before")
    @classmethod
    def _trim_created(cls, value):
        return parse_timestamp(value)

    @field_validator("created")
    @classmethod
    def _assume_utc(cls, value):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("config", "rootfs", mode="before")
    @classmethod
    def _none_is_empty_dict(cls, value):
        return value or {}

    @field_validator("history", mode="before")
    @classmethod
    def _none_is_empty_list(cls, value):
        return value or []


__all__ = [
    "CatalogDocument",
    "TagListDocument",
    "Platform",
    "Descriptor",
    "ManifestDocument",
    "ConfigBlob",
    "parse_timestamp",
]
