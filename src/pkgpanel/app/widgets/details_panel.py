"""Details panel widget for the selected package."""

from __future__ import annotations

from rich.markup import escape
from textual.containers import Vertical
from textual.widgets import Static

from pkgpanel.cli.renderers import OUTCOME_LABELS, STATE_LABELS, status_badge
from pkgpanel.core.store import PackageRow


def describe(row: PackageRow) -> str:
    """Rich markup summarising one row."""
    lines = [f"[b]{escape(row.name)}[/b]", f"[dim]{escape(row.app_id)}[/dim]", ""]
    if row.desc:
        lines += [escape(row.desc), ""]
    if row.status is None:
        lines.append("Status: unknown")
    else:
        lines.append(f"Status: {status_badge(row.status)}")
        if row.status.version:
            lines.append(f"Version: {row.status.version}")
        if row.status.error:
            lines.append(f"[red]Error:[/red] {escape(row.status.error)}")
    if row.operation is not None:
        lines.append(f"Operation: {STATE_LABELS[row.operation]}")
    if row.outcome is not None:
        lines.append(f"Last result: {OUTCOME_LABELS[row.outcome]}")
    return "\n".join(lines)


class DetailsPanel(Vertical):
    """Panel to show details of the selected package."""

    def compose(self):
        yield Static("Details", classes="details_title")
        yield Static("Select a package to see details", id="details_body")

    def show_row(self, row: PackageRow) -> None:
        self.query_one("#details_body", Static).update(describe(row))
