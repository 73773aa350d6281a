"""
Pure snapshot updates.

Each function takes the prior snapshot and the outcome of an operation and
returns a new snapshot; nothing here touches the network. Deletes are applied
optimistically after the registry confirmed them.
"""
from __future__ import annotations

from typing import Iterable, List

from ..models import RepositoryDetail, RepositoryMeta
from .snapshot import Snapshot

__all__ = [
    "apply_tag_deletion",
    "apply_tags_deletion",
    "apply_repository_deletion",
    "apply_repository_detail",
    "collect_architectures",
]


def collect_architectures(metas: Iterable[RepositoryMeta]) -> List[str]:
    return sorted({arch for meta in metas for arch in meta.architectures})


def _emptied(meta: RepositoryMeta) -> RepositoryMeta:
    return meta.model_copy(update={
        "tag_count": 0,
        "total_size": 0,
        "architectures": [],
        "last_updated": None,
        "sampled_tags": [],
    })


def apply_tag_deletion(snapshot: Snapshot, key: str, tag_name: str) -> Snapshot:
    """
    Remove ``tag_name`` from the repository ``key``.

    With a cached detail the tag count is recomputed from it, otherwise the
    summary count is decremented.
    """
    details = dict(snapshot.repository_details)
    detail = details.get(key)
    if detail is not None:
        update = {"tags": [t for t in detail.tags if t.name != tag_name]}
        if detail.tag_names is not None:
            update["tag_names"] = [name for name in detail.tag_names if name != tag_name]
        detail = detail.model_copy(update=update)
        details[key] = detail

    metas = []
    for meta in snapshot.repository_metas:
        if meta.key == key:
            count = detail.tag_count if detail is not None else max(0, meta.tag_count - 1)
            if count == 0:
                meta = _emptied(meta)
            else:
                meta = meta.model_copy(update={
                    "tag_count": count,
                    "sampled_tags": [t for t in meta.sampled_tags if t != tag_name],
                })
        metas.append(meta)

    return snapshot.model_copy(update={
        "repository_metas": metas,
        "repository_details": details,
        "available_architectures": collect_architectures(metas),
    })


def apply_tags_deletion(snapshot: Snapshot, key: str, tag_names: Iterable[str]) -> Snapshot:
    for tag_name in tag_names:
        snapshot = apply_tag_deletion(snapshot, key, tag_name)
    return snapshot


def apply_repository_deletion(snapshot: Snapshot, key: str) -> Snapshot:
    """Drop the repository ``key`` and its cached detail."""
    metas = [meta for meta in snapshot.repository_metas if meta.key != key]
    details = {k: v for k, v in snapshot.repository_details.items() if k != key}
    return snapshot.model_copy(update={
        "repository_metas": metas,
        "repository_details": details,
        "available_architectures": collect_architectures(metas),
    })


def apply_repository_detail(snapshot: Snapshot, detail: RepositoryDetail) -> Snapshot:
    """Cache a freshly fetched detail and align the summary's tag count with it."""
    details = dict(snapshot.repository_details)
    details[detail.key] = detail
    metas = []
    for meta in snapshot.repository_metas:
        if meta.key == detail.key and meta.tag_count != detail.tag_count:
            meta = _emptied(meta) if detail.tag_count == 0 else meta.model_copy(
                update={"tag_count": detail.tag_count})
        metas.append(meta)
    return snapshot.model_copy(update={
        "repository_metas": metas,
        "repository_details": details,
        "available_architectures": collect_architectures(metas),
    })
