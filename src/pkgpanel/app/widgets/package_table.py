"""Widget to display the catalog packages and their status."""

from __future__ import annotations

from rich.text import Text
from textual.message import Message
from textual.widgets import DataTable

from pkgpanel.cli.renderers import OUTCOME_LABELS, STATE_LABELS, status_badge
from pkgpanel.core.models import OperationOutcome
from pkgpanel.core.store import PackageRow


def status_cell(row: PackageRow) -> Text:
    if row.checking:
        return Text.from_markup("[yellow]Checking...[/yellow]")
    if row.status is None:
        return Text.from_markup("[dim]Unknown[/dim]")
    return Text.from_markup(status_badge(row.status))


def operation_cell(row: PackageRow) -> Text:
    if row.busy:
        return Text.from_markup(STATE_LABELS[row.operation])
    if row.outcome is not None and row.outcome is not OperationOutcome.SUCCEEDED:
        return Text.from_markup(OUTCOME_LABELS[row.outcome])
    if row.operation is not None:
        return Text.from_markup(STATE_LABELS[row.operation])
    return Text("")


class PackageTable(DataTable):
    """Widget to display a table of packages."""

    class RowHighlighted(Message):
        """Message sent when the cursor moves to a package."""
        def __init__(self, app_id: str) -> None:
            self.app_id = app_id
            super().__init__()

    def on_mount(self) -> None:
        """Called when the widget is mounted."""
        self.zebra_stripes = True
        self.cursor_type = "row"

        self.add_column("Name", key="name")
        self.add_column("Id", key="id")
        self.add_column("Version", key="version")
        self.add_column("Status", key="status")
        self.add_column("Operation", key="operation")

    def load_rows(self, rows: list[PackageRow]) -> None:
        """Replace all rows."""
        self.clear()
        for row in rows:
            self.add_row(
                row.name,
                row.app_id,
                (row.status.version if row.status else None) or "",
                status_cell(row),
                operation_cell(row),
                key=row.key,
            )

    def update_row(self, row: PackageRow) -> None:
        """Refresh the cells of one row."""
        if row.key not in self.rows:
            return
        self.update_cell(row.key, "version", (row.status.version if row.status else None) or "")
        self.update_cell(row.key, "status", status_cell(row))
        self.update_cell(row.key, "operation", operation_cell(row))

    def selected_key(self) -> str | None:
        if self.row_count == 0:
            return None
        row_key, _ = self.coordinate_to_cell_key(self.cursor_coordinate)
        return row_key.value

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is not None and event.row_key.value is not None:
            self.post_message(self.RowHighlighted(event.row_key.value))
