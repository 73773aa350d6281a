"""
Manifest media types and constants.

Single source of truth for the manifest formats the registry client negotiates.
"""
from __future__ import annotations

# Single-platform image manifests
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"

# Multi-platform manifest lists / indexes
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"

SINGLE_PLATFORM_TYPES = frozenset({DOCKER_MANIFEST_V2, OCI_IMAGE_MANIFEST})
MULTI_PLATFORM_TYPES = frozenset({DOCKER_MANIFEST_LIST, OCI_IMAGE_INDEX})

# Accept header order sent with every manifest request
ACCEPTED_MANIFEST_TYPES = [
    DOCKER_MANIFEST_V2,
    DOCKER_MANIFEST_LIST,
    OCI_IMAGE_MANIFEST,
    OCI_IMAGE_INDEX,
]
MANIFEST_ACCEPT = ", ".join(ACCEPTED_MANIFEST_TYPES)

# Buildkit attaches provenance/SBOM manifests to indexes with this annotation
REFERENCE_TYPE_ANNOTATION = "vnd.docker.reference.type"
ATTESTATION_MANIFEST = "attestation-manifest"

DIGEST_HEADER = "Docker-Content-Digest"


def is_multi_platform(media_type: str) -> bool:
    return media_type in MULTI_PLATFORM_TYPES


def is_single_platform(media_type: str) -> bool:
    return media_type in SINGLE_PLATFORM_TYPES


__all__ = [
    "DOCKER_MANIFEST_V2",
    "OCI_IMAGE_MANIFEST",
    "DOCKER_MANIFEST_LIST",
    "OCI_IMAGE_INDEX",
    "SINGLE_PLATFORM_TYPES",
    "MULTI_PLATFORM_TYPES",
    "ACCEPTED_MANIFEST_TYPES",
    "MANIFEST_ACCEPT",
    "REFERENCE_TYPE_ANNOTATION",
    "ATTESTATION_MANIFEST",
    "DIGEST_HEADER",
    "is_multi_platform",
    "is_single_platform",
]
