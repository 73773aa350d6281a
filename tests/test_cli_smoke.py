"""
CLI smoke tests against a fake registry.

Tests basic CLI functionality and command wiring without a real registry.
Every command runs through Typer's CliRunner with ``CLIContext.from_env``
replaced so the store talks to the in-memory fake.
"""
from __future__ import annotations

import pytest
from rich.console import Console
from typer.testing import CliRunner

from containerhub.cli import app
from containerhub.cli_context import CLIContext
from containerhub.operations import printers
from containerhub.settings import Settings


@pytest.fixture
def use_settings(monkeypatch, fake_registry):
    """Point the CLI at ``settings`` and the fake registry."""
    monkeypatch.setattr(printers, "_console", Console(width=200))

    def install(settings: Settings) -> None:
        monkeypatch.setattr(
            CLIContext, "from_env",
            classmethod(lambda cls: cls(settings=settings, transport=fake_registry.transport())),
        )
    return install


@pytest.fixture
def cli(use_settings, settings):
    use_settings(settings)
    return CliRunner()


@pytest.fixture
def seeded(fake_registry):
    fake_registry.add_image("team/app", "v1", layers=(1000,))
    fake_registry.add_image("team/app", "v2", layers=(2000,))
    fake_registry.add_image("tools", "latest", architecture="arm64")
    return fake_registry


class TestSources:

    def test_sources_shows_health(self, cli, fake_registry):
        result = cli.invoke(app, ["sources"])

        assert result.exit_code == 0
        assert "default" in result.stdout
        assert fake_registry.host in result.stdout
        assert "200" in result.stdout

    def test_unreachable_source(self, cli, fake_registry):
        fake_registry.offline = True

        result = cli.invoke(app, ["sources"])

        assert result.exit_code == 0
        assert "Registry unreachable" in result.stdout

    def test_no_sources(self, use_settings, tmp_path):
        use_settings(Settings(state_dir=tmp_path / "none"))

        result = CliRunner().invoke(app, ["sources"])

        assert result.exit_code == 0
        assert "No sources configured" in result.stdout


class TestList:

    def test_list_repositories(self, cli, seeded):
        result = cli.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "Repositories (2)" in result.stdout
        assert "team/app" in result.stdout
        assert "tools" in result.stdout

    def test_list_search(self, cli, seeded):
        result = cli.invoke(app, ["list", "--search", "TOOL"])

        assert result.exit_code == 0
        assert "Repositories (1)" in result.stdout
        assert "team/app" not in result.stdout

    def test_list_architecture(self, cli, seeded):
        result = cli.invoke(app, ["list", "--arch", "arm64", "--verbose"])

        assert result.exit_code == 0
        assert "Repositories (1)" in result.stdout
        assert "Architectures: amd64, arm64" in result.stdout

    def test_list_untagged(self, cli, seeded):
        seeded.add_repository("empty")

        hidden = cli.invoke(app, ["list"])
        shown = cli.invoke(app, ["list", "--show-untagged"])

        assert "empty" not in hidden.stdout
        assert "untagged" in shown.stdout

    def test_list_serves_cache_when_offline(self, cli, seeded):
        assert cli.invoke(app, ["list"]).exit_code == 0
        seeded.offline = True

        result = cli.invoke(app, ["list", "--refresh"])

        assert result.exit_code == 0
        assert "Showing cached data" in result.stdout
        assert "team/app" in result.stdout

    def test_list_offline_without_cache(self, cli, fake_registry):
        fake_registry.offline = True

        result = cli.invoke(app, ["list"])

        assert result.exit_code == 7
        assert "Error:" in result.output

    def test_list_without_sources(self, use_settings, tmp_path):
        use_settings(Settings(state_dir=tmp_path / "none"))

        result = CliRunner().invoke(app, ["list"])

        assert result.exit_code == 6


class TestShow:

    def test_show_repository(self, cli, seeded):
        result = cli.invoke(app, ["show", "team/app"])

        assert result.exit_code == 0
        assert "Repository: team/app" in result.stdout
        assert "Tags: 2" in result.stdout
        assert "v1" in result.stdout
        assert "linux/amd64" in result.stdout

    def test_show_unknown_source(self, cli, seeded):
        result = cli.invoke(app, ["show", "team/app", "--source", "nope"])

        assert result.exit_code == 2
        assert "Unknown source" in result.output

    def test_show_rejects_tagged_reference(self, cli, seeded):
        result = cli.invoke(app, ["show", "team/app:v1"])

        assert result.exit_code == 2

    def test_show_server_error(self, cli, seeded):
        seeded.fail("GET", "/v2/team/app/tags/list", 503)

        result = cli.invoke(app, ["show", "team/app"])

        assert result.exit_code == 5


class TestRefresh:

    def test_full_refresh(self, cli, seeded):
        result = cli.invoke(app, ["refresh"])

        assert result.exit_code == 0
        assert "Full refresh: 2 repositories (2 tagged) from 1/1 healthy sources" in result.stdout

    def test_light_refresh(self, cli, seeded):
        result = cli.invoke(app, ["refresh", "--light", "--verbose"])

        assert result.exit_code == 0
        assert "Light refresh" in result.stdout

    def test_refresh_offline(self, cli, fake_registry):
        fake_registry.offline = True

        result = cli.invoke(app, ["refresh"])

        assert result.exit_code == 7


class TestDelete:

    def test_delete_tag(self, cli, seeded):
        result = cli.invoke(app, ["delete-tag", "team/app", "v1", "--yes"])

        assert result.exit_code == 0
        assert "1 of 1 tags deleted" in result.stdout
        assert set(seeded.repositories["team/app"]) == {"v2"}

    def test_delete_tag_declined(self, cli, seeded):
        result = cli.invoke(app, ["delete-tag", "team/app", "v1"], input="n\n")

        assert result.exit_code == 1
        assert set(seeded.repositories["team/app"]) == {"v1", "v2"}

    def test_delete_rejected_tag_fails(self, cli, seeded):
        seeded.delete_status = 405

        result = cli.invoke(app, ["delete-tag", "team/app", "v1", "--yes"])

        assert result.exit_code == 1
        assert "0 of 1 tags deleted" in result.stdout
        assert set(seeded.repositories["team/app"]) == {"v1", "v2"}

    def test_delete_repository(self, cli, seeded):
        result = cli.invoke(app, ["delete-repo", "team/app", "--yes"])

        assert result.exit_code == 0
        assert "Deleted repository team/app" in result.stdout
        assert seeded.repositories["team/app"] == {}

    def test_delete_repository_rejected(self, cli, seeded):
        seeded.delete_status = 405

        result = cli.invoke(app, ["delete-repo", "team/app", "--yes"])

        assert result.exit_code == 1
        assert "was not fully deleted" in result.stdout


class TestWatch:

    def test_watch_with_duration(self, cli, seeded):
        result = cli.invoke(app, ["watch", "--duration", "0.01"])

        assert result.exit_code == 0
        assert "Full refresh: 2 repositories" in result.stdout
