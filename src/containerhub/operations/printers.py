"""
Human-readable output formatting.

Centralizes all CLI output formatting so CLI commands stay thin and focused.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from ..formatting import format_bytes, format_relative_time, short_digest
from ..models import RepositoryDetail, RepositoryMeta, Source
from ..status_codes import describe_status
from ..store import DeleteReport
from ..store.progress import Progress

_console = Console()


def _status_style(source: Source) -> str:
    if source.status.is_healthy:
        return "green"
    if source.status.code == -1:
        return "dim"
    return "red"


def print_sources(sources: Dict[str, Source], status_codes: Dict[str, str]) -> None:
    """
    Print configured sources with their health.

    Args:
        sources: Sources keyed by name
        status_codes: Status explanation document
    """
    if not sources:
        _console.print("[dim]No sources configured[/]")
        return

    table = Table(title="Sources")
    table.add_column("Name", style="cyan")
    table.add_column("Host")
    table.add_column("Status")
    table.add_column("Checked")
    table.add_column("Explanation", style="dim")

    for name, source in sorted(sources.items()):
        status = source.status.code
        table.add_row(
            name,
            source.host,
            f"[{_status_style(source)}]{status}[/]",
            format_relative_time(source.last_checked),
            describe_status(source.status, status_codes),
        )
    _console.print(table)


def print_repositories(metas: Sequence[RepositoryMeta], sources: Dict[str, Source],
                       verbose: bool = False) -> None:
    """
    Print the repository overview table.

    Sizes, architectures and update times come from sampled tags only.
    """
    if not metas:
        _console.print("[dim]No repositories found[/]")
        return

    table = Table(title=f"Repositories ({len(metas)})")
    table.add_column("Repository", style="cyan")
    table.add_column("Source")
    table.add_column("Tags", justify="right")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Architectures")
    table.add_column("Updated")
    if verbose:
        table.add_column("Sampled", style="dim")

    for meta in metas:
        source = sources.get(meta.source)
        row = [
            meta.full_name,
            source.host if source else meta.source,
            str(meta.tag_count) if meta.tag_count else "[dim]untagged[/]",
            format_bytes(meta.total_size),
            ", ".join(meta.architectures) or "-",
            format_relative_time(meta.last_updated),
        ]
        if verbose:
            row.append(", ".join(meta.sampled_tags))
        table.add_row(*row)
    _console.print(table)


def print_repository_detail(detail: RepositoryDetail, verbose: bool = False) -> None:
    """
    Print every tag of one repository with its platform images.

    Args:
        detail: Repository detail to display
        verbose: Show full digests and media types
    """
    _console.print(f"[bold]Repository:[/] {detail.full_name} [dim]({detail.source})[/]")
    _console.print(f"[bold]Tags:[/] {detail.tag_count}")
    _console.print(f"[bold]Size:[/] {format_bytes(detail.total_size)}")
    _console.print(f"[bold]Architectures:[/] {', '.join(detail.architectures) or '-'}")
    _console.print(f"[bold]Updated:[/] {format_relative_time(detail.last_updated)}")

    if not detail.tags:
        _console.print("[dim]No tags[/]")
        return

    table = Table(title="Tags")
    table.add_column("Tag", style="cyan")
    table.add_column("Digest", style="dim")
    table.add_column("Platform")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Created")
    if verbose:
        table.add_column("Media type", style="dim")

    for tag in detail.tags:
        digest = tag.digest if verbose else short_digest(tag.digest)
        if tag.digest_source != "header":
            digest = f"{digest} ({tag.digest_source})"
        images = tag.images or [None]
        for index, image in enumerate(images):
            first = index == 0
            row = [
                tag.name if first else "",
                digest if first else "",
                image.platform if image else "-",
                format_bytes(image.size if image else tag.total_size),
                format_relative_time(image.created) if image else "never",
            ]
            if verbose:
                row.append(tag.media_type if first else "")
            table.add_row(*row)
    _console.print(table)


def print_refresh_summary(metas: Sequence[RepositoryMeta], sources: Dict[str, Source],
                          light: bool = False) -> None:
    kind = "Light" if light else "Full"
    tagged = sum(1 for meta in metas if meta.tag_count)
    healthy = sum(1 for source in sources.values() if source.status.is_healthy)
    _console.print(
        f"[green]✓[/] {kind} refresh: {len(metas)} repositories "
        f"({tagged} tagged) from {healthy}/{len(sources)} healthy sources"
    )


def print_delete_report(repository: str, report: DeleteReport) -> None:
    style = "green" if report.ok else "yellow"
    _console.print(f"[{style}]{repository}: {report.message}[/]")
    for tag in report.failed:
        _console.print(f"  [red]✗[/] {tag}")
    for tag in report.absent:
        _console.print(f"  [dim]- {tag} (not found)[/]")


def print_repository_deleted(repository: str, ok: bool) -> None:
    if ok:
        _console.print(f"[green]✓[/] Deleted repository {repository}")
    else:
        _console.print(f"[red]✗[/] Repository {repository} was not fully deleted")


def print_progress(progress: Progress) -> None:
    _console.print(
        f"[dim]{progress.stage.value}: {progress.completed}/{progress.total} "
        f"({progress.percent:.0f}%)[/]"
    )


def print_last_error(message: Optional[str]) -> None:
    if message:
        _console.print(f"[yellow]Showing cached data: {message}[/]")


def print_architectures(architectures: List[str]) -> None:
    if architectures:
        _console.print(f"[dim]Architectures: {', '.join(architectures)}[/]")
