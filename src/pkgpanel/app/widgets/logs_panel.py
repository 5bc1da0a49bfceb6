"""Widget for displaying activity logs in the control panel."""

from __future__ import annotations

from datetime import datetime

from textual.widgets import Log


class LogsPanel(Log):
    """Panel showing probe results and queue transitions."""

    def on_mount(self) -> None:
        """Called when the logs panel is mounted."""
        self.highlight = True
        self.auto_scroll = True
        self.write_line("Logs ready...")

    def entry(self, message: str, level: str = "INFO") -> None:
        """Append a timestamped entry."""
        self.write_line(f"[{datetime.now():%H:%M:%S}] {level:<7} {message}")
