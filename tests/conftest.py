"""Root pytest configuration for containerhub tests."""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import pytest

from containerhub.settings import Settings, SourceConfig
from containerhub.store import RegistryStore

from .fakes.fake_registry import FakeRegistry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


class FakeClock:
    """Settable UTC clock injected into the store."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


# Keep the developer's registry configuration out of the tests
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Clear registry variables and point the state dir at a temp directory."""
    for key in list(os.environ):
        if key.startswith(("REGISTRY_URL", "REGISTRY_AUTH", "CONTAINERHUB_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CONTAINERHUB_STATE_DIR", str(tmp_path / "env-state"))


@pytest.fixture
def fake_registry():
    """Empty in-memory registry at http://registry.test."""
    return FakeRegistry()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path, fake_registry):
    """Standard test settings: one source backed by the fake registry."""
    return Settings(
        sources=(SourceConfig(name="default", url=fake_registry.base_url),),
        state_dir=tmp_path / "state",
    )


@pytest.fixture
def make_store(settings, fake_registry, clock):
    """Factory for stores wired to the fake registry and clock."""
    def factory(custom_settings: Settings = None, transport=None) -> RegistryStore:
        return RegistryStore(
            custom_settings or settings,
            transport=transport or fake_registry.transport(),
            clock=clock,
        )
    return factory
