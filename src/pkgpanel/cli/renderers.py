"""Renderers for displaying package status in the CLI using Rich."""

from __future__ import annotations

from typing import Iterable

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pkgpanel.core.models import (
    BulkResult,
    CatalogEntry,
    InstallStatus,
    ManagerInfo,
    OperationOutcome,
    OperationResult,
    OperationState,
    ProbeState,
)

console = Console()

STATUS_LABELS = {
    ProbeState.INSTALLED: "[green]Installed[/green]",
    ProbeState.NOT_INSTALLED: "[dim]Not installed[/dim]",
    ProbeState.PROBE_FAILED: "[red]Check failed[/red]",
}

OUTCOME_LABELS = {
    OperationOutcome.SUCCEEDED: "[green]Done[/green]",
    OperationOutcome.UNVERIFIED: "[yellow]Unverified[/yellow]",
    OperationOutcome.FAILED: "[red]Failed[/red]",
}

STATE_LABELS = {
    OperationState.PENDING: "[cyan]Queued[/cyan]",
    OperationState.RUNNING: "[blue]Running[/blue]",
    OperationState.SUCCEEDED: "[green]Done[/green]",
    OperationState.FAILED: "[red]Failed[/red]",
    OperationState.STOPPED: "[magenta]Stopped[/magenta]",
}


def status_badge(status: InstallStatus) -> str:
    """Colour-coded label for a probe result.

    A failed check and a package that is not installed never share a label.
    """
    return STATUS_LABELS[status.state]


def status_table(results: Iterable[tuple[str, InstallStatus]]) -> Table:
    """Create a table of package statuses.

    Args:
        results: Pairs of package id and status.

    Returns:
        A Rich Table.
    """
    table = Table(box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Package", style="bold")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Error", style="dim")

    for app_id, status in results:
        table.add_row(escape(app_id), status_badge(status), status.version or "", escape(status.error or ""))

    return table


def bulk_table(result: BulkResult) -> Table:
    table = status_table((r.app_id, r.status) for r in result.results)
    if result.errors or result.timed_out:
        table.caption = (
            f"{len(result.errors)} check(s) failed"
            + (f"; {result.error}" if result.error else "")
        )
    return table


def operation_summary(result: OperationResult) -> str:
    label = OUTCOME_LABELS[result.outcome]
    line = f"{label} {escape(result.message)}"
    if result.final_status is not None:
        line += f"\n   Current status: {status_badge(result.final_status)}"
        if result.final_status.version:
            line += f" {result.final_status.version}"
    return line


def operation_event(state: OperationState, package_id: str, retry_count: int, next_backoff: float) -> str:
    """One line describing a queue transition."""
    text = f"{STATE_LABELS[state]} {package_id}"
    if state is OperationState.PENDING and retry_count:
        text += f" (retry {retry_count} in {next_backoff:g}s)"
    return text


def catalog_table(entries: Iterable[CatalogEntry]) -> Table:
    table = Table(box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Description", style="dim")

    for e in entries:
        table.add_row(escape(e.app_id), escape(e.app_name), escape(e.app_desc))

    return table


def manager_table(infos: Iterable[ManagerInfo]) -> Table:
    table = Table(box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Manager", style="bold")
    table.add_column("Available")
    table.add_column("Version")

    for info in infos:
        table.add_row(
            info.manager.value,
            "[green]yes[/green]" if info.installed else f"[red]no[/red] [dim]{escape(info.error or '')}[/dim]",
            info.version or "",
        )

    return table
