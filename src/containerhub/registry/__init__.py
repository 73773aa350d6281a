"""
Docker Registry HTTP API v2 client.

Exposes the lazily-fetched object graph (``Registry`` down to ``Blob``), the
error taxonomy and the media types the client understands.
"""
from .errors import (
    AuthError,
    BlobFetchError,
    CatalogFetchError,
    ClientError,
    DeleteError,
    ManifestFetchError,
    NetworkUnavailable,
    NotFound,
    RegistryError,
    ServerError,
    TagsFetchError,
)
from .http import RegistryHTTP, create_client
from .objects import Blob, BlobInfo, Image, ImageConfig, Manifest, Registry, Repository, Tag

__all__ = [
    "Registry",
    "Repository",
    "Tag",
    "Manifest",
    "Image",
    "ImageConfig",
    "Blob",
    "BlobInfo",
    "RegistryHTTP",
    "create_client",
    "RegistryError",
    "NetworkUnavailable",
    "ClientError",
    "AuthError",
    "NotFound",
    "ServerError",
    "CatalogFetchError",
    "TagsFetchError",
    "ManifestFetchError",
    "BlobFetchError",
    "DeleteError",
]
