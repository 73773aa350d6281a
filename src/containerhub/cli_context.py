"""
CLI context: the settings and HTTP transport one command runs with.

Commands build their ``RegistryStore`` through this object instead of reading
the environment themselves, so tests can swap in a fake transport.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .settings import Settings, create_settings_from_env
from .store import RegistryStore


@dataclass
class CLIContext:
    """
    Dependencies of a single CLI invocation.

    Attributes:
        settings: Sources and tuning loaded for this run
        transport: Optional httpx transport; None uses the real network
    """
    settings: Settings
    transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Build a context from ``REGISTRY_URL*`` and ``CONTAINERHUB_*`` variables.

        Raises:
            ValueError: If the environment holds an invalid configuration
        """
        return cls(settings=create_settings_from_env())

    def create_store(self) -> RegistryStore:
        """
        Create a registry store for this command.

        The store restores the persisted snapshot immediately; use it as an
        async context manager so its HTTP client is closed.
        """
        return RegistryStore(self.settings, transport=self.transport)
