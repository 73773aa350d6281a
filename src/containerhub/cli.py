"""
ContainerHub CLI

Implements 7 CLI verbs with Operations facade integration:
- sources: Show configured sources and their health
- list: List repositories with aggregate metadata
- show: Show every tag of one repository
- refresh: Run one full or light refresh
- delete-tag: Delete tags of a repository
- delete-repo: Delete every tag of a repository
- watch: Keep refreshing in the foreground
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer

from .cli_context import CLIContext
from .filters import RepositoryFilter
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import (
    print_architectures, print_delete_report, print_last_error, print_progress,
    print_refresh_summary, print_repositories, print_repository_deleted,
    print_repository_detail, print_sources
)
from .store.progress import Progress, Stage

app = typer.Typer(name="containerhub", help="Browse and manage Docker Registry v2 repositories")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def sources(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Show configured sources with their health status."""
    _configure_logging(verbose)

    def _sources() -> None:
        async def _main() -> None:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                ops = Operations(OpsConfig(verbose=verbose), store)
                result = await ops.sources()
                print_sources(result, store.status_codes)

        asyncio.run(_main())

    run_and_exit(_sources)


@app.command("list")
def list_repositories(
    search: str = typer.Option("", "--search", "-s", help="Case-insensitive name filter"),
    arch: str = typer.Option("all", "--arch", help="Only repositories offering this architecture"),
    source: Optional[List[str]] = typer.Option(None, "--source", help="Only these sources (name or host)"),
    show_untagged: bool = typer.Option(False, "--show-untagged", help="Include repositories without tags"),
    refresh: bool = typer.Option(False, "--refresh", help="Refresh before listing"),
    force: bool = typer.Option(False, "--force", help="Ignore the cache freshness window"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """List repositories with tag counts, sizes and architectures."""
    _configure_logging(verbose)

    def _list() -> None:
        repository_filter = RepositoryFilter(
            search=search,
            architecture=arch,
            sources=tuple(source or ()),
            show_untagged=show_untagged,
        )

        async def _main() -> None:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                ops = Operations(OpsConfig(force=force, verbose=verbose), store)
                metas = await ops.list_repositories(repository_filter, refresh=refresh)
                print_last_error(store.last_error)
                print_repositories(metas, store.sources, verbose=verbose)
                if verbose:
                    print_architectures(store.available_architectures)

        asyncio.run(_main())

    run_and_exit(_list)


@app.command()
def show(
    repository: str = typer.Argument(..., help="Repository name, e.g. team/app"),
    source: Optional[str] = typer.Option(None, "--source", help="Source name"),
    force: bool = typer.Option(False, "--force", help="Ignore the cached detail"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Show every tag of a repository with its platform images."""
    _configure_logging(verbose)

    def _show() -> None:
        async def _main() -> None:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                ops = Operations(OpsConfig(force=force, verbose=verbose), store)
                detail = await ops.show(repository, source=source)
                print_repository_detail(detail, verbose=verbose)

        asyncio.run(_main())

    run_and_exit(_show)


@app.command()
def refresh(
    light: bool = typer.Option(False, "--light", help="Catalog and tag lists only"),
    force: bool = typer.Option(False, "--force", help="Ignore the cache freshness window"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Run one refresh and print a summary."""
    _configure_logging(verbose)

    def _refresh() -> None:
        async def _main() -> None:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                if verbose:
                    store.progress.subscribe(print_progress)
                ops = Operations(OpsConfig(force=force, verbose=verbose), store)
                metas = await ops.refresh(light=light)
                print_refresh_summary(metas, store.sources, light=light)

        asyncio.run(_main())

    run_and_exit(_refresh)


@app.command("delete-tag")
def delete_tag(
    repository: str = typer.Argument(..., help="Repository name, e.g. team/app"),
    tags: List[str] = typer.Argument(..., help="Tags to delete"),
    source: Optional[str] = typer.Option(None, "--source", help="Source name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Delete tags of a repository. Exits 1 unless every tag was deleted."""
    _configure_logging(verbose)
    if not yes:
        typer.confirm(f"Delete {len(tags)} tag(s) of {repository}: {', '.join(tags)}?", abort=True)

    def _delete_tag() -> None:
        async def _main() -> bool:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                ops = Operations(OpsConfig(verbose=verbose), store)
                report = await ops.delete_tags(repository, tags, source=source)
                print_delete_report(repository, report)
                return report.ok

        if not asyncio.run(_main()):
            raise typer.Exit(code=1)

    run_and_exit(_delete_tag)


@app.command("delete-repo")
def delete_repo(
    repository: str = typer.Argument(..., help="Repository name, e.g. team/app"),
    source: Optional[str] = typer.Option(None, "--source", help="Source name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Delete every tag of a repository. Exits 1 unless all were deleted."""
    _configure_logging(verbose)
    if not yes:
        typer.confirm(f"Delete repository {repository} and all of its tags?", abort=True)

    def _delete_repo() -> None:
        async def _main() -> bool:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                ops = Operations(OpsConfig(verbose=verbose), store)
                ok = await ops.delete_repository(repository, source=source)
                print_repository_deleted(repository, ok)
                return ok

        if not asyncio.run(_main()):
            raise typer.Exit(code=1)

    run_and_exit(_delete_repo)


@app.command()
def watch(
    duration: Optional[float] = typer.Option(None, "--duration", help="Seconds to watch (default: until interrupted)"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    """Refresh periodically in the foreground, printing a summary after each refresh."""
    _configure_logging(verbose)

    def _watch() -> None:
        async def _main() -> None:
            context = CLIContext.from_env()
            async with context.create_store() as store:
                def on_progress(progress: Progress) -> None:
                    if verbose:
                        print_progress(progress)
                    if progress.stage == Stage.DONE:
                        print_refresh_summary(store.repositories(), store.sources)

                ops = Operations(OpsConfig(verbose=verbose), store)
                await ops.watch(duration, on_progress=on_progress)

        try:
            asyncio.run(_main())
        except KeyboardInterrupt:
            typer.echo("Stopped")

    run_and_exit(_watch)


if __name__ == "__main__":
    app()
