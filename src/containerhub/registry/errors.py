"""
Registry error classes.

Provides a clear taxonomy of errors that can occur while talking to a Docker
Registry HTTP API v2 endpoint. Transport failures and HTTP status codes are
mapped onto one hierarchy so callers can tell "unreachable" apart from
"the registry said no".
"""
from __future__ import annotations

from typing import Optional, Type

# Synthetic status for requests that never produced an HTTP response
NETWORK_STATUS = 0


class RegistryError(Exception):
    """
    Base class for all registry errors.

    Attributes:
        status: HTTP status code, or 0 when no response was received
        url: Request URL, when known
    """

    def __init__(self, message: str, status: int = NETWORK_STATUS, url: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.url = url


class NetworkUnavailable(RegistryError):
    """
    The request failed before a response arrived.

    Raised when:
    - The connection was refused or DNS failed
    - The request timed out (``timed_out`` is True)
    """

    def __init__(self, message: str, url: Optional[str] = None, timed_out: bool = False):
        super().__init__(message, status=NETWORK_STATUS, url=url)
        self.timed_out = timed_out


class ClientError(RegistryError):
    """HTTP 4xx: usually a configuration or credentials problem."""
    pass


class AuthError(ClientError):
    """HTTP 401 Unauthorized / 403 Forbidden."""
    pass


class NotFound(ClientError):
    """HTTP 404: the repository, manifest or blob does not exist."""
    pass


class ServerError(RegistryError):
    """HTTP 5xx: the registry itself failed."""
    pass


class OperationError(RegistryError):
    """
    Base for errors raised by a specific registry operation.

    Carries the status of the underlying failure so callers can still
    distinguish unreachable registries from rejected requests.
    """

    def __init__(self, message: str, status: int = NETWORK_STATUS, url: Optional[str] = None,
                 cause: Optional[RegistryError] = None):
        super().__init__(message, status=status, url=url)
        self.cause = cause

    @classmethod
    def wrap(cls, message: str, error: RegistryError) -> "OperationError":
        return cls(f"{message}: {error}", status=error.status, url=error.url, cause=error)


class CatalogFetchError(OperationError):
    """Listing ``/v2/_catalog`` failed."""
    pass


class TagsFetchError(OperationError):
    """Listing ``/v2/<name>/tags/list`` failed with something other than 404."""
    pass


class ManifestFetchError(OperationError):
    """Fetching or parsing a manifest failed."""
    pass


class BlobFetchError(OperationError):
    """Fetching or parsing a blob failed."""
    pass


class DeleteError(OperationError):
    """Deleting a manifest was rejected."""
    pass


def error_for_status(status: int, message: str, url: Optional[str] = None) -> RegistryError:
    """
    Map an HTTP status code to the matching error class.

    Args:
        status: HTTP status code (0 for no response)
        message: Error message
        url: Request URL

    Returns:
        RegistryError subclass instance (not raised)
    """
    cls: Type[RegistryError]
    if status == NETWORK_STATUS:
        return NetworkUnavailable(message, url=url)
    if status in (401, 403):
        cls = AuthError
    elif status == 404:
        cls = NotFound
    elif 400 <= status < 500:
        cls = ClientError
    elif status >= 500:
        cls = ServerError
    else:
        cls = RegistryError
    return cls(message, status=status, url=url)


__all__ = [
    "NETWORK_STATUS",
    "RegistryError",
    "NetworkUnavailable",
    "ClientError",
    "AuthError",
    "NotFound",
    "ServerError",
    "OperationError",
    "CatalogFetchError",
    "TagsFetchError",
    "ManifestFetchError",
    "BlobFetchError",
    "DeleteError",
    "error_for_status",
]
