"""
Fake Docker Registry v2 for testing.

Serves an in-memory registry through ``httpx.MockTransport`` so the real
client code (``RegistryHTTP`` and the object graph) runs unchanged. Every
request is recorded for call-count assertions, and failures can be injected
per path.
"""
from __future__ import annotations

import hashlib
import json
import re
from typing import Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import httpx

from containerhub.registry.media_types import (
    ATTESTATION_MANIFEST,
    DOCKER_MANIFEST_LIST,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    REFERENCE_TYPE_ANNOTATION,
)

__all__ = ["FakeRegistry", "digest_of", "routing_transport"]

_TAGS_RE = re.compile(r"^/v2/(?P<name>.+)/tags/list$")
_OBJECT_RE = re.compile(r"^/v2/(?P<name>.+)/(?P<kind>manifests|blobs)/(?P<ref>[^/]+)$")

CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"
LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"

Failure = Union[int, str]


def digest_of(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def _error_body(code: str, message: str) -> bytes:
    return json.dumps({"errors": [{"code": code, "message": message}]}).encode()


class FakeRegistry:
    """
    In-memory Docker Registry HTTP API v2.

    Repositories hold tags pointing at manifests; manifests and blobs are
    content addressed. Not for production use.

    Failure injection (``fail``) maps ``(method, path)`` to either an HTTP
    status, ``"timeout"`` or ``"offline"``; ``offline = True`` fails every
    request with a connection error.
    """

    def __init__(self, base_url: str = "http://registry.test"):
        self.base_url = base_url.rstrip("/")
        self.host = urlparse(self.base_url).netloc
        self.repositories: Dict[str, Dict[str, str]] = {}          # repo -> {tag: digest}
        self.manifests: Dict[str, Dict[str, Tuple[bytes, str]]] = {}  # repo -> {digest: (body, media type)}
        self.blobs: Dict[str, bytes] = {}                            # digest -> bytes
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Failure] = {}
        self.offline = False
        self.ping_status = 200
        self.page_size: Optional[int] = None
        self.send_digest_header = True
        self.omit_media_type = False
        self.delete_status: Optional[int] = None

    # ------------------------------------------------------------------
    # seeding
    # ------------------------------------------------------------------

    def add_repository(self, repo: str) -> None:
        """Add a repository with no tags."""
        self.repositories.setdefault(repo, {})
        self.manifests.setdefault(repo, {})

    def add_blob(self, data: bytes) -> str:
        digest = digest_of(data)
        self.blobs[digest] = data
        return digest

    def _store_manifest(self, repo: str, document: dict) -> Tuple[str, int]:
        self.add_repository(repo)
        media_type = document.get("mediaType", OCI_IMAGE_MANIFEST)
        if self.omit_media_type:
            document = {k: v for k, v in document.items() if k != "mediaType"}
        body = json.dumps(document, sort_keys=True).encode()
        digest = digest_of(body)
        self.manifests[repo][digest] = (body, media_type)
        return digest, len(body)

    def image_manifest(self, repo: str, architecture: str = "amd64", os: str = "linux",
                       layers: Sequence[int] = (1000, 2000), created: Optional[str] = "2024-01-15T10:00:00Z",
                       variant: Optional[str] = None, media_type: str = OCI_IMAGE_MANIFEST,
                       config_body: Optional[dict] = None) -> Tuple[str, int]:
        """
        Store a single-platform manifest (not tagged).

        Returns:
            (digest, manifest size)
        """
        config = config_body if config_body is not None else {
            "architecture": architecture,
            "os": os,
            "created": created,
            "config": {},
            "rootfs": {"type": "layers", "diff_ids": []},
        }
        if variant and config_body is None:
            config["variant"] = variant
        config_bytes = json.dumps(config, sort_keys=True).encode()
        config_digest = self.add_blob(config_bytes)
        layer_descriptors = []
        for index, size in enumerate(layers):
            layer_digest = digest_of(f"{repo}/{architecture}/{index}/{size}".encode())
            layer_descriptors.append({"mediaType": LAYER_MEDIA_TYPE, "digest": layer_digest, "size": size})
        document = {
            "schemaVersion": 2,
            "mediaType": media_type,
            "config": {"mediaType": CONFIG_MEDIA_TYPE, "digest": config_digest, "size": len(config_bytes)},
            "layers": layer_descriptors,
        }
        return self._store_manifest(repo, document)

    def add_image(self, repo: str, tag: str, **kwargs) -> str:
        """Push a single-platform image under ``tag``; returns the manifest digest."""
        digest, _ = self.image_manifest(repo, **kwargs)
        self.repositories[repo][tag] = digest
        return digest

    def index_manifest(self, repo: str, platforms: Sequence[Tuple[str, str]] = (("linux", "amd64"), ("linux", "arm64")),
                       attestation: bool = False, media_type: str = OCI_IMAGE_INDEX,
                       layers: Sequence[int] = (1000, 2000),
                       children: Sequence[Tuple[str, int, dict]] = ()) -> Tuple[str, int]:
        """
        Store a multi-platform index (not tagged).

        Args:
            platforms: (os, architecture) of each child image
            attestation: Also list an attestation manifest
            children: Extra raw (digest, size, platform) entries, e.g. nested indexes

        Returns:
            (digest, index size)
        """
        child_type = DOCKER_MANIFEST_V2 if media_type == DOCKER_MANIFEST_LIST else OCI_IMAGE_MANIFEST
        entries = []
        for os, architecture in platforms:
            digest, size = self.image_manifest(repo, architecture=architecture, os=os, layers=layers,
                                               media_type=child_type)
            entries.append({"mediaType": child_type, "digest": digest, "size": size,
                            "platform": {"architecture": architecture, "os": os}})
        for digest, size, platform in children:
            entries.append({"mediaType": self.manifests[repo][digest][1], "digest": digest, "size": size,
                            "platform": platform})
        if attestation:
            digest, size = self.image_manifest(repo, architecture="unknown", os="unknown", layers=(50,))
            entries.append({
                "mediaType": OCI_IMAGE_MANIFEST,
                "digest": digest,
                "size": size,
                "platform": {"architecture": "unknown", "os": "unknown"},
                "annotations": {REFERENCE_TYPE_ANNOTATION: ATTESTATION_MANIFEST},
            })
        return self._store_manifest(repo, {"schemaVersion": 2, "mediaType": media_type, "manifests": entries})

    def add_index(self, repo: str, tag: str, **kwargs) -> str:
        """Push a multi-platform index under ``tag``; returns the index digest."""
        digest, _ = self.index_manifest(repo, **kwargs)
        self.repositories[repo][tag] = digest
        return digest

    def retag(self, repo: str, tag: str, digest: str) -> None:
        self.repositories[repo][tag] = digest

    def fail(self, method: str, path: str, failure: Failure = 500) -> None:
        self.failures[(method, path)] = failure

    # ------------------------------------------------------------------
    # inspection
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: Optional[str] = None, path_contains: str = "") -> List[httpx.Request]:
        return [
            request for request in self.requests
            if (method is None or request.method == method) and path_contains in request.url.path
        ]

    def count(self, method: Optional[str] = None, path_contains: str = "") -> int:
        return len(self.calls(method, path_contains))

    def reset_requests(self) -> None:
        self.requests.clear()

    # ------------------------------------------------------------------
    # HTTP handling
    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        failure = self.failures.get((request.method, path))
        if self.offline or failure == "offline":
            raise httpx.ConnectError("connection refused", request=request)
        if failure == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if isinstance(failure, int):
            return httpx.Response(failure, content=_error_body("FAILED", "injected failure"))

        if path in ("/v2/", "/v2"):
            return httpx.Response(self.ping_status, json={})
        if path == "/v2/_catalog":
            return self._catalog(request)
        match = _TAGS_RE.match(path)
        if match:
            return self._tags(request, match.group("name"))
        match = _OBJECT_RE.match(path)
        if match:
            name, ref = match.group("name"), match.group("ref")
            if match.group("kind") == "blobs":
                return self._blob(request, ref)
            return self._manifest(request, name, ref)
        return httpx.Response(404, content=_error_body("NOT_FOUND", path))

    def _page(self, request: httpx.Request, items: List[str], path: str) -> Tuple[List[str], Dict[str, str]]:
        size = self.page_size
        if "n" in request.url.params:
            size = int(request.url.params["n"])
        if not size:
            return items, {}
        last = request.url.params.get("last")
        start = items.index(last) + 1 if last in items else 0
        page = items[start:start + size]
        headers = {}
        if start + size < len(items):
            headers["Link"] = f'<{path}?n={size}&last={page[-1]}>; rel="next"'
        return page, headers

    def _catalog(self, request: httpx.Request) -> httpx.Response:
        names, headers = self._page(request, sorted(self.repositories), "/v2/_catalog")
        return httpx.Response(200, json={"repositories": names}, headers=headers)

    def _tags(self, request: httpx.Request, name: str) -> httpx.Response:
        if name not in self.repositories:
            return httpx.Response(404, content=_error_body("NAME_UNKNOWN", name))
        tags = list(self.repositories[name])
        if not tags:
            # distribution answers null once every tag is gone
            return httpx.Response(200, json={"name": name, "tags": None})
        page, headers = self._page(request, tags, f"/v2/{name}/tags/list")
        return httpx.Response(200, json={"name": name, "tags": page}, headers=headers)

    def _resolve(self, name: str, ref: str) -> Optional[str]:
        if ref.startswith("sha256:"):
            return ref if ref in self.manifests.get(name, {}) else None
        return self.repositories.get(name, {}).get(ref)

    def _manifest(self, request: httpx.Request, name: str, ref: str) -> httpx.Response:
        if request.method == "DELETE":
            return self._delete_manifest(name, ref)
        digest = self._resolve(name, ref)
        if digest is None:
            return httpx.Response(404, content=_error_body("MANIFEST_UNKNOWN", f"{name}:{ref}"))
        body, media_type = self.manifests[name][digest]
        headers = {"Content-Type": media_type}
        if self.send_digest_header:
            headers["Docker-Content-Digest"] = digest
        if request.method == "HEAD":
            if request.headers.get("If-None-Match") == f'"{digest}"':
                return httpx.Response(304, headers=headers)
            headers["Content-Length"] = str(len(body))
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, content=body, headers=headers)

    def _delete_manifest(self, name: str, ref: str) -> httpx.Response:
        if self.delete_status is not None:
            return httpx.Response(self.delete_status, content=_error_body("UNSUPPORTED", "delete"))
        manifests = self.manifests.get(name, {})
        if ref not in manifests:
            return httpx.Response(404, content=_error_body("MANIFEST_UNKNOWN", ref))
        del manifests[ref]
        tags = self.repositories[name]
        for tag in [tag for tag, digest in tags.items() if digest == ref]:
            del tags[tag]
        return httpx.Response(202)

    def _blob(self, request: httpx.Request, digest: str) -> httpx.Response:
        data = self.blobs.get(digest)
        if data is None:
            return httpx.Response(404, content=_error_body("BLOB_UNKNOWN", digest))
        headers = {"Docker-Content-Digest": digest, "Content-Type": "application/octet-stream"}
        if request.method == "HEAD":
            headers["Content-Length"] = str(len(data))
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, content=data, headers=headers)


def routing_transport(*registries: FakeRegistry) -> httpx.MockTransport:
    """One transport serving several fake registries, routed by host."""
    by_host = {registry.host: registry for registry in registries}

    def handler(request: httpx.Request) -> httpx.Response:
        registry = by_host.get(urlparse(str(request.url)).netloc)
        if registry is None:
            raise httpx.ConnectError(f"unknown host {request.url.host}", request=request)
        return registry.handler(request)

    return httpx.MockTransport(handler)
