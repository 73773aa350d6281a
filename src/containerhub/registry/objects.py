"""
Registry object model.

Lazily materializes ``Registry -> Repository -> Tag -> Manifest -> Image -> Blob``
from the Docker Registry HTTP API v2. Nothing is fetched until asked for; each
object caches what it fetched, and a new refresh simply builds a new graph.

Size rule: a single-platform image weighs its config blob plus every layer it
declares. A multi-platform manifest weighs the sum of its child images,
recursively through nested indexes.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from ..models import ImageSummary, Reachable, SourceStatus, TimedOut, Unreachable, full_name, split_full_name
from ..settings import SourceConfig
from .documents import CatalogDocument, ConfigBlob, Descriptor, ManifestDocument, Platform, TagListDocument
from .errors import (
    BlobFetchError,
    CatalogFetchError,
    DeleteError,
    ManifestFetchError,
    NetworkUnavailable,
    RegistryError,
    TagsFetchError,
)
from .http import RegistryHTTP
from .media_types import DIGEST_HEADER, MANIFEST_ACCEPT, is_multi_platform, is_single_platform

__all__ = [
    "CONTENT_DIGEST_SOURCES", "Registry", "Repository", "Tag", "Manifest", "Image", "ImageConfig", "Blob", "BlobInfo",
]

logger = logging.getLogger(__name__)

# DELETE answers that leave the manifest gone
_DELETED_STATUSES = (200, 202, 204, 404)

# digest sources that identify the manifest content
CONTENT_DIGEST_SOURCES = ("header", "computed")


def _next_link(response: httpx.Response) -> Optional[str]:
    return response.links.get("next", {}).get("url")


class Registry:
    """
    Entry point of the object graph for one configured source.
    """

    def __init__(self, config: SourceConfig, http: RegistryHTTP, *, digest_fallback: str = "sha256"):
        self.config = config
        self.http = http
        self.digest_fallback = digest_fallback

    @property
    def name(self) -> str:
        return self.config.name

    def __repr__(self) -> str:
        return f"Registry({self.name!r}, {self.http.base_url!r})"

    async def ping(self) -> SourceStatus:
        """
        Probe ``GET /v2/`` and classify the outcome.

        Any HTTP answer, including 401, means the server is reachable.
        """
        try:
            response = await self.http.request("GET", "/v2/")
        except NetworkUnavailable as e:
            logger.debug(f"Health probe failed for {self.name}: {e}")
            return TimedOut() if e.timed_out else Unreachable()
        return Reachable(http_status=response.status_code)

    async def list_repositories(self) -> List[Repository]:
        """
        List every repository of the catalog, following pagination.

        Raises:
            CatalogFetchError: On a non-2xx answer or an unreachable registry
        """
        names: List[str] = []
        path: Optional[str] = "/v2/_catalog"
        seen = set()
        while path and path not in seen:
            seen.add(path)
            try:
                response = await self.http.request("GET", path)
            except NetworkUnavailable as e:
                raise CatalogFetchError.wrap(f"Catalog of {self.name} unavailable", e) from e
            if not response.is_success:
                error = self.http.error(response, f"Catalog request failed for {self.name}")
                raise CatalogFetchError.wrap("Catalog fetch failed", error) from error
            try:
                document = CatalogDocument.model_validate_json(response.content)
            except ValidationError as e:
                raise CatalogFetchError(
                    f"Invalid catalog from {self.name}: {e}", status=response.status_code, url=path
                ) from e
            names.extend(document.repositories)
            path = _next_link(response)

        logger.debug(f"Catalog of {self.name}: {len(names)} repositories")
        return [self.repository(*split_full_name(entry)) for entry in names]

    def repository(self, namespace: Optional[str], name: str) -> Repository:
        return Repository(self, namespace, name)


class Repository:
    """A repository identified by ``(source, namespace?, name)``."""

    def __init__(self, registry: Registry, namespace: Optional[str], name: str):
        self.registry = registry
        self.namespace = namespace or None
        self.name = name
        self._tags: Optional[List[Tag]] = None

    @property
    def full_name(self) -> str:
        return full_name(self.namespace, self.name)

    @property
    def http(self) -> RegistryHTTP:
        return self.registry.http

    def __repr__(self) -> str:
        return f"Repository({self.registry.name!r}, {self.full_name!r})"

    async def tags(self) -> List[Tag]:
        """
        List tags in registry order.

        Returns an empty list when the repository answers 404.

        Raises:
            TagsFetchError: For any other failure
        """
        if self._tags is not None:
            return self._tags

        names: List[str] = []
        path: Optional[str] = f"/v2/{self.full_name}/tags/list"
        seen = set()
        while path and path not in seen:
            seen.add(path)
            try:
                response = await self.http.request("GET", path)
            except NetworkUnavailable as e:
                raise TagsFetchError.wrap(f"Tags of {self.full_name} unavailable", e) from e
            if response.status_code == 404:
                break
            if not response.is_success:
                error = self.http.error(response, f"Tags request failed for {self.full_name}")
                raise TagsFetchError.wrap("Tags fetch failed", error) from error
            try:
                document = TagListDocument.model_validate_json(response.content)
            except ValidationError as e:
                raise TagsFetchError(
                    f"Invalid tag list for {self.full_name}: {e}", status=response.status_code, url=path
                ) from e
            names.extend(document.tags)
            path = _next_link(response)

        self._tags = [Tag(self, name) for name in names]
        return self._tags

    def tag(self, name: str) -> Tag:
        return Tag(self, name)

    def blob(self, digest: str) -> Blob:
        return Blob(self, digest)

    async def fetch_manifest(self, reference: str) -> Manifest:
        """
        GET a manifest by tag or digest, negotiating all supported media types.

        Raises:
            ManifestFetchError: On transport failure, non-2xx or invalid JSON
        """
        path = f"/v2/{self.full_name}/manifests/{reference}"
        try:
            response = await self.http.request("GET", path, headers={"Accept": MANIFEST_ACCEPT})
        except NetworkUnavailable as e:
            raise ManifestFetchError.wrap(f"Manifest {self.full_name}:{reference} unavailable", e) from e
        if not response.is_success:
            error = self.http.error(response, f"Manifest request failed for {self.full_name}:{reference}")
            raise ManifestFetchError.wrap("Manifest fetch failed", error) from error

        try:
            document = ManifestDocument.model_validate_json(response.content)
        except ValidationError as e:
            raise ManifestFetchError(
                f"Invalid manifest {self.full_name}:{reference}: {e}",
                status=response.status_code,
                url=str(response.request.url),
            ) from e

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        media_type = document.media_type or content_type

        digest = response.headers.get(DIGEST_HEADER)
        digest_source = "header"
        if not digest:
            if self.registry.digest_fallback == "tag":
                # approximation: not a content digest, Tag.delete refuses it
                digest, digest_source = reference, "tag"
            else:
                digest, digest_source = f"sha256:{hashlib.sha256(response.content).hexdigest()}", "computed"
            logger.debug(f"No {DIGEST_HEADER} for {self.full_name}:{reference}, using {digest_source} digest")

        return Manifest(self, reference, media_type, document, digest, digest_source)

    async def delete_tag(self, tag_name: str) -> bool:
        """
        Delete one tag by name.

        A tag the repository does not list is already gone: returns True
        without issuing any DELETE.
        """
        tags = await self.tags()
        for tag in tags:
            if tag.name == tag_name:
                return await tag.delete()
        logger.debug(f"Tag {self.full_name}:{tag_name} not listed, nothing to delete")
        return True

    async def delete(self) -> bool:
        """
        Delete every tag of the repository.

        All deletions are attempted even when some fail; the result is True
        only if every one succeeded.
        """
        tags = await self.tags()
        results = await asyncio.gather(*(tag.delete() for tag in tags))
        failed = [tag.name for tag, ok in zip(tags, results) if not ok]
        if failed:
            logger.warning(f"Failed to delete {len(failed)} of {len(tags)} tags of {self.full_name}: {failed}")
        return not failed


class Tag:
    """A mutable alias pointing at a manifest."""

    def __init__(self, repository: Repository, name: str):
        self.repository = repository
        self.name = name
        self._manifest: Optional[Manifest] = None

    def __repr__(self) -> str:
        return f"Tag({self.repository.full_name!r}, {self.name!r})"

    async def manifest(self) -> Manifest:
        if self._manifest is None:
            self._manifest = await self.repository.fetch_manifest(self.name)
        return self._manifest

    async def is_up_to_date(self, known_digest: str) -> bool:
        """
        Cheap freshness check with ``HEAD`` + ``If-None-Match``.

        Returns:
            True on 304, or on 2xx echoing ``known_digest``

        Raises:
            NetworkUnavailable: If the registry cannot be reached
        """
        path = f"/v2/{self.repository.full_name}/manifests/{self.name}"
        response = await self.repository.http.request(
            "HEAD", path, headers={"Accept": MANIFEST_ACCEPT, "If-None-Match": f'"{known_digest}"'}
        )
        if response.status_code == 304:
            return True
        if response.is_success:
            return response.headers.get(DIGEST_HEADER) == known_digest
        return False

    async def delete(self) -> bool:
        """
        Resolve the manifest digest and ``DELETE`` it.

        A tag-name stand-in digest is never sent; the delete fails instead.

        Returns:
            True when the manifest is gone afterwards (404 counts), else False
        """
        full = self.repository.full_name
        try:
            manifest = await self.manifest()
        except ManifestFetchError as e:
            if e.status == 404:
                return True
            logger.warning(f"Cannot resolve digest of {full}:{self.name}: {e}")
            return False
        if manifest.digest_source not in CONTENT_DIGEST_SOURCES:
            logger.warning(f"Refusing to delete {full}:{self.name}: no content digest known ({manifest.digest_source})")
            return False

        path = f"/v2/{full}/manifests/{manifest.digest}"
        try:
            response = await self.repository.http.request("DELETE", path)
        except NetworkUnavailable as e:
            logger.warning(f"Delete of {full}:{self.name} failed: {e}")
            return False

        if response.status_code in _DELETED_STATUSES:
            logger.info(f"Deleted {full}:{self.name} ({manifest.digest})")
            return True

        error = DeleteError.wrap(
            f"Delete of {full}:{self.name} rejected",
            self.repository.http.error(response, "DELETE manifest"),
        )
        logger.warning(str(error))
        return False


class Manifest:
    """
    A content-addressed manifest: one image, or an index of per-platform images.

    ``digest`` identifies the content only when ``digest_source`` is in
    ``CONTENT_DIGEST_SOURCES``; a ``"tag"`` digest is the tag name.
    """

    def __init__(self, repository: Repository, reference: str, media_type: str,
                 document: ManifestDocument, digest: str, digest_source: str = "header"):
        self.repository = repository
        self.reference = reference
        self.media_type = media_type
        self.document = document
        self.digest = digest
        self.digest_source = digest_source
        self._images: Optional[List[Image]] = None

    def __repr__(self) -> str:
        return f"Manifest({self.repository.full_name!r}, {self.digest!r}, {self.media_type!r})"

    def is_multi_platform(self) -> bool:
        return is_multi_platform(self.media_type)

    async def images(self, platform: Optional[Platform] = None) -> List[Image]:
        """
        Images described by this manifest.

        An index fetches its children concurrently, skipping attestation
        entries; a child that fails is logged and left out. Unknown media
        types describe no image.

        Args:
            platform: Platform of this manifest as declared by a parent index
        """
        if self._images is not None:
            return self._images

        if self.is_multi_platform():
            children = [d for d in self.document.manifests if not d.is_attestation]
            results = await asyncio.gather(*(self._child_images(d) for d in children), return_exceptions=True)
            images: List[Image] = []
            for descriptor, result in zip(children, results):
                if isinstance(result, RegistryError):
                    logger.warning(f"Skipping child manifest {descriptor.digest} of "
                                   f"{self.repository.full_name}:{self.reference}: {result}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                images.extend(result)
        elif is_single_platform(self.media_type):
            images = [Image(
                self.repository,
                digest=self.digest,
                platform=platform,
                config=ImageConfig(self.repository, self.document.config) if self.document.config else None,
                layers=list(self.document.layers),
            )]
        else:
            logger.debug(f"Unsupported manifest media type {self.media_type!r} for "
                         f"{self.repository.full_name}:{self.reference}")
            images = []

        self._images = images
        return images

    async def _child_images(self, descriptor: Descriptor) -> List[Image]:
        child = await self.repository.fetch_manifest(descriptor.digest)
        return await child.images(platform=descriptor.platform)

    async def total_size(self) -> int:
        return sum(image.size for image in await self.images())


class Image:
    """One platform's concrete image."""

    def __init__(self, repository: Repository, *, digest: str, platform: Optional[Platform],
                 config: Optional[ImageConfig], layers: List[Descriptor]):
        self.repository = repository
        self.digest = digest
        self.architecture = platform.architecture if platform else None
        self.os = platform.os if platform else None
        self.variant = platform.variant if platform else None
        self.config = config
        self.layers = layers

    def __repr__(self) -> str:
        return f"Image({self.digest!r}, {self.architecture!r}, size={self.size})"

    @property
    def size(self) -> int:
        config_size = self.config.size if self.config else 0
        return config_size + sum(layer.size for layer in self.layers)

    async def summary(self) -> ImageSummary:
        """
        Summarize the image, reading its config blob for platform and creation time.

        A config blob that cannot be fetched leaves those fields empty.
        """
        blob: Optional[ConfigBlob] = None
        if self.config is not None:
            try:
                blob = await self.config.blob()
            except BlobFetchError as e:
                logger.warning(f"Config blob of {self.repository.full_name}@{self.digest} unavailable: {e}")

        return ImageSummary(
            digest=self.digest,
            architecture=self.architecture or (blob.architecture if blob else None),
            os=self.os or (blob.os if blob else None),
            variant=self.variant or (blob.variant if blob else None),
            size=self.size,
            created=blob.created if blob else None,
        )


class ImageConfig:
    """Reference to an image config blob, fetched on demand."""

    def __init__(self, repository: Repository, descriptor: Descriptor):
        self.repository = repository
        self.descriptor = descriptor
        self._blob: Optional[ConfigBlob] = None

    @property
    def digest(self) -> str:
        return self.descriptor.digest

    @property
    def size(self) -> int:
        return self.descriptor.size

    async def blob(self) -> ConfigBlob:
        """
        Raises:
            BlobFetchError: If the blob is missing or not a config document
        """
        if self._blob is None:
            data = await self.repository.blob(self.digest).json()
            try:
                self._blob = ConfigBlob.model_validate(data)
            except ValidationError as e:
                raise BlobFetchError(f"Invalid config blob {self.digest}: {e}") from e
        return self._blob


class BlobInfo:
    def __init__(self, digest: str, exists: bool, size: Optional[int] = None, content_type: Optional[str] = None):
        self.digest = digest
        self.exists = exists
        self.size = size
        self.content_type = content_type

    def __repr__(self) -> str:
        return f"BlobInfo({self.digest!r}, exists={self.exists}, size={self.size})"


class Blob:
    """Content-addressed binary object (layer or config)."""

    def __init__(self, repository: Repository, digest: str):
        self.repository = repository
        self.digest = digest

    @property
    def path(self) -> str:
        return f"/v2/{self.repository.full_name}/blobs/{self.digest}"

    async def head(self) -> BlobInfo:
        """
        Raises:
            BlobFetchError: On transport failure or a status other than 2xx/404
        """
        try:
            response = await self.repository.http.request("HEAD", self.path)
        except NetworkUnavailable as e:
            raise BlobFetchError.wrap(f"Blob {self.digest} unavailable", e) from e
        if response.status_code == 404:
            return BlobInfo(self.digest, exists=False)
        if not response.is_success:
            error = self.repository.http.error(response, f"Blob HEAD failed for {self.digest}")
            raise BlobFetchError.wrap("Blob check failed", error) from error
        length = response.headers.get("Content-Length")
        return BlobInfo(
            response.headers.get(DIGEST_HEADER, self.digest),
            exists=True,
            size=int(length) if length and length.isdigit() else None,
            content_type=response.headers.get("Content-Type"),
        )

    async def get(self) -> bytes:
        """
        Raises:
            BlobFetchError: On transport failure or non-2xx
        """
        try:
            response = await self.repository.http.request("GET", self.path)
        except NetworkUnavailable as e:
            raise BlobFetchError.wrap(f"Blob {self.digest} unavailable", e) from e
        if not response.is_success:
            error = self.repository.http.error(response, f"Blob request failed for {self.digest}")
            raise BlobFetchError.wrap("Blob fetch failed", error) from error
        return response.content

    async def json(self):
        content = await self.get()
        try:
            return json.loads(content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BlobFetchError(f"Blob {self.digest} is not valid JSON: {e}") from e
