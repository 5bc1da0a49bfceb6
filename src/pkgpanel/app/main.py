"""Interactive control panel built on Textual."""

from __future__ import annotations

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header

from pkgpanel.core.config import Settings
from pkgpanel.core.context import PanelContext
from pkgpanel.core.errors import PanelError
from pkgpanel.core.models import Action, Manager, OperationOutcome, OperationState
from pkgpanel.core.queue import OperationHandle, QueuedOperation
from pkgpanel.core.store import PackageRow, PanelStore
from .keymap import bind_keys
from .widgets.details_panel import DetailsPanel
from .widgets.logs_panel import LogsPanel
from .widgets.package_table import PackageTable


class PanelApp(App):
    """Main application class for the control panel."""

    TITLE = "pkgpanel"

    CSS = """
    Screen { background: black; color: white; }
    #main { height: 1fr; }
    #center { width: 3fr; }
    #table { height: 2fr; }
    #logs { height: 1fr; border-top: solid $primary; }
    #details { width: 1fr; padding: 0 1; border-left: solid $primary; }
    """

    def __init__(self, ctx: PanelContext | None = None, settings: Settings | None = None) -> None:
        super().__init__()
        self.settings = settings or Settings()
        self._ctx = ctx

    def compose(self) -> ComposeResult:
        """Compose the UI layout."""
        yield Header(show_clock=True)
        with Horizontal(id="main"):
            with Vertical(id="center"):
                yield PackageTable(id="table")
                yield LogsPanel(id="logs")
            yield DetailsPanel(id="details")
        yield Footer()

    def on_mount(self) -> None:
        """Wire the store to the widgets and run the first check."""
        bind_keys(self)

        self.ctx = self._ctx or PanelContext(self.settings)
        self.store = PanelStore(self.ctx)
        self.store.subscribe(self._on_row_changed)
        self.ctx.queue.subscribe(self._on_transition)
        self.call_after_refresh(self._start)

    def _start(self) -> None:
        self._load()
        self.action_check_all()

    async def on_unmount(self) -> None:
        await self.ctx.aclose()

    @property
    def table(self) -> PackageTable:
        return self.query_one("#table", PackageTable)

    @property
    def logs(self) -> LogsPanel:
        return self.query_one("#logs", LogsPanel)

    def _load(self) -> None:
        try:
            rows = self.store.load()
        except PanelError as e:
            self.logs.entry(e.message, "ERROR")
            rows = []
        self.sub_title = self.store.manager.value
        self.table.load_rows(rows)
        self.logs.entry(f"Loaded {len(rows)} {self.store.manager.value} packages")

    def _selected(self) -> PackageRow | None:
        key = self.table.selected_key()
        return None if key is None else self.store.row(key)

    def _on_row_changed(self, row: PackageRow) -> None:
        self.table.update_row(row)
        selected = self._selected()
        if selected is not None and selected.key == row.key:
            self.query_one("#details", DetailsPanel).show_row(row)

    def _on_transition(self, op: QueuedOperation) -> None:
        text = f"{op.action.value} {op.package_id}: {op.state.value}"
        if op.retry_count:
            text += f" (retry {op.retry_count}, next in {op.next_backoff:g}s)"
        self.logs.entry(text, "ERROR" if op.state is OperationState.FAILED else "INFO")

    def on_package_table_row_highlighted(self, event: PackageTable.RowHighlighted) -> None:
        row = self.store.row(event.app_id)
        if row is not None:
            self.query_one("#details", DetailsPanel).show_row(row)

    def action_check_all(self) -> None:
        self.run_worker(self._check_all(False), group="bulk", exclusive=True)

    def action_force_check_all(self) -> None:
        self.run_worker(self._check_all(True), group="bulk", exclusive=True)

    async def _check_all(self, force_refresh: bool) -> None:
        self.logs.entry(f"Checking {len(self.store.rows)} packages...")
        result = await self.store.check_all(force_refresh=force_refresh)
        for err in result.errors:
            self.logs.entry(f"Check failed for {err.app_id}: {err.error}", "ERROR")
        if result.success:
            self.logs.entry("Status check complete", "SUCCESS")
        else:
            self.logs.entry(result.error or "Status check incomplete", "WARNING")

    def action_refresh_selected(self) -> None:
        row = self._selected()
        if row is not None:
            self.run_worker(self._refresh(row.app_id), group=f"refresh-{row.key}", exclusive=True)

    async def _refresh(self, app_id: str) -> None:
        status = await self.store.refresh(app_id)
        self.logs.entry(f"{app_id}: {status.state.value}" + (f" {status.version}" if status.version else ""))

    def action_toggle_selected(self) -> None:
        row = self._selected()
        if row is None:
            return
        try:
            handle = self.store.toggle(row.app_id)
        except PanelError as e:
            self.logs.entry(e.message, "WARNING")
            return
        self.run_worker(self._await_operation(handle), group=f"op-{row.key}")

    async def _await_operation(self, handle: OperationHandle) -> None:
        try:
            result = await handle
        except PanelError as e:
            self.logs.entry(e.message, "ERROR")
            self.run_worker(self._refresh(handle.package_id))
            return

        self.store.record_result(result)
        level = "SUCCESS" if result.outcome is OperationOutcome.SUCCEEDED else "WARNING"
        self.logs.entry(result.message, level)

    def action_stop_selected(self) -> None:
        row = self._selected()
        if row is not None and self.store.stop(row.app_id):
            self.logs.entry(f"Stopped operation for {row.app_id}")

    def action_toggle_chocolatey(self) -> None:
        self.run_worker(self._toggle_chocolatey(), group="bootstrap")

    async def _toggle_chocolatey(self) -> None:
        info = await self.ctx.manager_version(Manager.CHOCO)
        action = Action.UNINSTALL if info.installed else Action.INSTALL
        try:
            handle = self.ctx.enqueue_manager_operation(Manager.CHOCO, action)
        except PanelError as e:
            self.logs.entry(e.message, "WARNING")
            return

        verb = "Uninstalling" if info.installed else "Installing"
        self.logs.entry(f"{verb} Chocolatey...")
        try:
            result = await handle
        except PanelError as e:
            self.logs.entry(e.message, "ERROR")
            return

        level = "SUCCESS" if result.outcome is OperationOutcome.SUCCEEDED else "WARNING"
        self.logs.entry(result.message, level)
        if self.store.manager is Manager.CHOCO:
            self.action_check_all()

    def action_switch_manager(self) -> None:
        managers = list(Manager)
        current = managers.index(self.store.manager)
        self.store.manager = managers[(current + 1) % len(managers)]
        self._load()
        self.action_check_all()


def run(settings: Settings | None = None) -> None:
    """Run the control panel."""
    PanelApp(settings=settings).run()


if __name__ == "__main__":
    run()
