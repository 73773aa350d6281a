"""
Registry HTTP client for the Docker Registry HTTP API v2.

Wraps a shared ``httpx.AsyncClient`` for one configured source. Every request
is bounded by the configured timeout; transport failures are mapped to
``NetworkUnavailable`` (status 0) so callers can tell "unreachable" apart from
4xx/5xx answers. HTTP status codes are returned to the caller untouched: each
operation decides which ones are errors.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..settings import Settings, SourceConfig
from .errors import NetworkUnavailable, RegistryError, error_for_status

__all__ = ["RegistryHTTP", "create_client"]

logger = logging.getLogger(__name__)

USER_AGENT = "containerhub/0.1.0"


def create_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Create the shared async HTTP client.

    Args:
        settings: Settings carrying timeout and TLS policy
        transport: Optional transport override (tests use ``httpx.MockTransport``)
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_s),
        follow_redirects=True,
        verify=not settings.insecure,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


class RegistryHTTP:
    """
    HTTP access to one registry source.

    The client is owned by the caller (the store) and shared across sources;
    this object only carries the base URL, credentials and retry policy.
    """

    def __init__(self, source: SourceConfig, client: httpx.AsyncClient, *, retries: int = 0):
        """
        Initialize registry HTTP access.

        Args:
            source: Source configuration (base URL, optional basic auth)
            client: Shared async client
            retries: Extra attempts for timed out requests (0=no retry)
        """
        self.source = source
        self.base_url = source.url.rstrip("/")
        self.client = client
        self.retries = retries

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    async def request(self, method: str, path: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """
        Issue one request, retrying timeouts per policy.

        Args:
            method: HTTP method
            path: Path below the base URL (``/v2/...``) or an absolute URL
            headers: Extra request headers

        Returns:
            The response, whatever its status

        Raises:
            NetworkUnavailable: If no response was received
        """
        url = self.url(path)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(httpx.TimeoutException),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    logger.debug(f"{method} {url}")
                    return await self.client.request(method, url, headers=headers, auth=self.source.auth)
        except httpx.TimeoutException as e:
            raise NetworkUnavailable(f"Timed out: {method} {url}", url=url, timed_out=True) from e
        except httpx.RequestError as e:
            raise NetworkUnavailable(f"Network error: {method} {url}: {e}", url=url) from e
        raise NetworkUnavailable(f"No response: {method} {url}", url=url)

    @staticmethod
    def error(response: httpx.Response, message: str) -> RegistryError:
        """Build the taxonomy error for a non-success response."""
        return error_for_status(
            response.status_code,
            f"{message} (HTTP {response.status_code})",
            url=str(response.request.url),
        )
