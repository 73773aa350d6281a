"""
Building summaries from the registry object graph.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from ..models import RepositoryMeta, TagDetail
from ..registry.objects import Tag

__all__ = ["summarize_tag", "build_repository_meta"]

logger = logging.getLogger(__name__)


async def summarize_tag(tag: Tag) -> TagDetail:
    """
    Resolve a tag down to its images.

    Raises:
        ManifestFetchError: If the tag's own manifest cannot be fetched
    """
    manifest = await tag.manifest()
    images = await manifest.images()
    summaries = await asyncio.gather(*(image.summary() for image in images))
    return TagDetail(
        name=tag.name,
        digest=manifest.digest,
        digest_source=manifest.digest_source,
        media_type=manifest.media_type,
        multi_platform=manifest.is_multi_platform(),
        total_size=sum(image.size for image in images),
        images=list(summaries),
    )


def build_repository_meta(source: str, namespace: Optional[str], name: str, tag_count: int,
                          sample: Sequence[TagDetail]) -> RepositoryMeta:
    """
    Aggregate a repository summary from its sampled tags.

    An empty sample (untagged repository, or every sampled tag failed) gives
    zero size, no architectures and no last-updated time.
    """
    architectures = sorted({arch for tag in sample for arch in tag.architectures})
    updated = [tag.last_updated for tag in sample if tag.last_updated]
    return RepositoryMeta(
        source=source,
        namespace=namespace,
        name=name,
        tag_count=tag_count,
        total_size=sum(tag.total_size for tag in sample),
        architectures=architectures,
        last_updated=max(updated) if updated else None,
        sampled_tags=[tag.name for tag in sample],
    )
