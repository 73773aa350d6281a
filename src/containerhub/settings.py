"""
Settings and configuration for ContainerHub.

Centralizes configuration values and provides validation with fail-fast behavior.
Registry sources are loaded from environment variables and/or a JSON sources
document at store construction time.
"""
from __future__ import annotations

import base64
import binascii
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

__all__ = ["Settings", "SourceConfig", "create_settings_from_env", "load_sources_file"]

DIGEST_FALLBACKS = ("sha256", "tag")

_SOURCE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class SourceConfig:
    """
    One configured registry endpoint.

    Attributes:
        name: Identifying key ("default" for the un-suffixed env source)
        url: Base URL of the registry (scheme included)
        host: Display host, defaults to the URL's host[:port]
        username: Optional basic auth user
        password: Optional basic auth password
    """
    name: str
    url: str
    host: str = ""
    username: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        if not self.name or not _SOURCE_NAME_RE.match(self.name):
            raise ValueError(f"Invalid source name: {self.name!r}")
        if not self.url:
            raise ValueError(f"Source {self.name!r} has no url")
        if not self.host:
            object.__setattr__(self, "host", extract_host(self.url))

    @property
    def auth(self) -> Optional[Tuple[str, str]]:
        if self.username and self.password:
            return (self.username, self.password)
        return None


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the registry client and store.

    Registry Settings:
        sources: Configured registry sources
        request_timeout_ms: Per-request timeout in milliseconds
        http_retry: Number of retries for timed out requests (0=no retry)
        insecure: Use plain HTTP for scheme-less URLs and skip TLS verification
        digest_fallback: "sha256" (hash manifest bytes) or "tag" (legacy) when
            the registry omits Docker-Content-Digest

    Store Settings:
        batch_size: Repositories per wave during refreshes
        detail_batch_size: Tags per wave when fetching one repository
        sample_size: Tags sampled per repository for aggregate metadata
        cache_ttl_s: Age under which a full refresh or detail fetch is reused
        light_refresh_interval_s: Scheduler period for catalog-only refreshes
        full_refresh_interval_s: Scheduler period for full refreshes
        state_dir: Directory holding the persisted snapshot
        status_codes_path: Optional override for the status explanation document
    """
    sources: Tuple[SourceConfig, ...] = ()
    request_timeout_ms: int = 3000
    http_retry: int = 0
    insecure: bool = False
    digest_fallback: str = "sha256"

    batch_size: int = 10
    detail_batch_size: int = 5
    sample_size: int = 2
    cache_ttl_s: float = 30.0
    light_refresh_interval_s: float = 30.0
    full_refresh_interval_s: float = 120.0
    state_dir: Path = field(default_factory=lambda: Path.home() / ".cache" / "containerhub")
    status_codes_path: Optional[Path] = None

    def __post_init__(self):
        """Validate settings on construction."""
        names = [source.name for source in self.sources]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate source names in {names}")

        if self.request_timeout_ms <= 0:
            raise ValueError(f"request_timeout_ms must be positive, got {self.request_timeout_ms}")
        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")
        if self.digest_fallback not in DIGEST_FALLBACKS:
            raise ValueError(
                f"digest_fallback must be one of {', '.join(DIGEST_FALLBACKS)}, got {self.digest_fallback!r}"
            )

        for name in ("batch_size", "detail_batch_size", "sample_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")

        for name in ("cache_ttl_s", "light_refresh_interval_s", "full_refresh_interval_s"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")

    @property
    def timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0

    def source(self, name: str) -> SourceConfig:
        for source in self.sources:
            if source.name == name:
                return source
        raise ValueError(f"Unknown source: {name}")


def extract_host(url: str) -> str:
    """Return host[:port] of a URL, tolerating scheme-less input."""
    parsed = urlparse(url if "://" in url else f"//{url}")
    return parsed.netloc or url


def normalize_url(url: str, insecure: bool = False) -> str:
    """Add a scheme when missing and strip trailing slashes."""
    url = url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"{'http' if insecure else 'https'}://{url}"
    return url


def decode_basic_auth(token: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Decode a base64 ``user:password`` token, returning (None, None) if unusable."""
    if not token:
        return None, None
    try:
        decoded = base64.b64decode(token).decode()
    except (binascii.Error, UnicodeDecodeError):
        return None, None
    if ":" not in decoded:
        return None, None
    username, password = decoded.split(":", 1)
    return username, password


def load_sources_file(path: Path, insecure: bool = False) -> Dict[str, SourceConfig]:
    """
    Load the JSON sources document.

    Format: ``{ "<name>": { "path": "<url>", "host": "<display host>" } }``

    Raises:
        ValueError: If the document is malformed
    """
    try:
        with open(path, "r") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid sources file {path}: {e}") from e

    if not isinstance(document, dict):
        raise ValueError(f"Sources file {path} must contain a JSON object")

    sources: Dict[str, SourceConfig] = {}
    for name, entry in document.items():
        if not isinstance(entry, dict) or not entry.get("path"):
            raise ValueError(f"Source {name!r} in {path} needs a 'path'")
        sources[name] = SourceConfig(
            name=name,
            url=normalize_url(entry["path"], insecure),
            host=entry.get("host") or "",
        )
    return sources


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Sources:
        - REGISTRY_URL (source "default")
        - REGISTRY_URL_<SUFFIX> (source "<suffix>")
        - REGISTRY_AUTH / REGISTRY_AUTH_<SUFFIX> (base64 "user:password")
        - CONTAINERHUB_SOURCES_FILE (JSON sources document)

        Tuning:
        - CONTAINERHUB_TIMEOUT_MS (default: 3000)
        - CONTAINERHUB_HTTP_RETRY (default: 0)
        - CONTAINERHUB_INSECURE (default: false)
        - CONTAINERHUB_DIGEST_FALLBACK (default: sha256)
        - CONTAINERHUB_BATCH_SIZE (default: 10)
        - CONTAINERHUB_DETAIL_BATCH_SIZE (default: 5)
        - CONTAINERHUB_SAMPLE_SIZE (default: 2)
        - CONTAINERHUB_CACHE_TTL (default: 30)
        - CONTAINERHUB_LIGHT_INTERVAL (default: 30)
        - CONTAINERHUB_FULL_INTERVAL (default: 120)
        - CONTAINERHUB_STATE_DIR (default: ~/.cache/containerhub)
        - CONTAINERHUB_STATUS_CODES_FILE (optional)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    insecure = str_to_bool(os.getenv("CONTAINERHUB_INSECURE", "false"))

    sources: Dict[str, SourceConfig] = {}
    sources_file = os.getenv("CONTAINERHUB_SOURCES_FILE")
    if sources_file:
        sources.update(load_sources_file(Path(sources_file), insecure))

    for key, value in sorted(os.environ.items()):
        if key == "REGISTRY_URL":
            name, auth_key = "default", "REGISTRY_AUTH"
        elif key.startswith("REGISTRY_URL_") and len(key) > len("REGISTRY_URL_"):
            suffix = key[len("REGISTRY_URL_"):]
            name, auth_key = suffix.lower(), f"REGISTRY_AUTH_{suffix}"
        else:
            continue
        if not value:
            continue
        username, password = decode_basic_auth(os.getenv(auth_key))
        sources[name] = SourceConfig(
            name=name,
            url=normalize_url(value, insecure),
            username=username,
            password=password,
        )

    state_dir = os.getenv("CONTAINERHUB_STATE_DIR")
    status_codes = os.getenv("CONTAINERHUB_STATUS_CODES_FILE")

    return Settings(
        sources=tuple(sources.values()),
        request_timeout_ms=get_int("CONTAINERHUB_TIMEOUT_MS", 3000),
        http_retry=get_int("CONTAINERHUB_HTTP_RETRY", 0),
        insecure=insecure,
        digest_fallback=os.getenv("CONTAINERHUB_DIGEST_FALLBACK", "sha256"),
        batch_size=get_int("CONTAINERHUB_BATCH_SIZE", 10),
        detail_batch_size=get_int("CONTAINERHUB_DETAIL_BATCH_SIZE", 5),
        sample_size=get_int("CONTAINERHUB_SAMPLE_SIZE", 2),
        cache_ttl_s=get_float("CONTAINERHUB_CACHE_TTL", 30.0),
        light_refresh_interval_s=get_float("CONTAINERHUB_LIGHT_INTERVAL", 30.0),
        full_refresh_interval_s=get_float("CONTAINERHUB_FULL_INTERVAL", 120.0),
        state_dir=Path(state_dir) if state_dir else Path.home() / ".cache" / "containerhub",
        status_codes_path=Path(status_codes) if status_codes else None,
    )
