"""UI state for the control panel: one row per catalog package."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

from pkgpanel.core.context import PanelContext
from pkgpanel.core.models import (
    Action,
    BulkResult,
    InstallStatus,
    Manager,
    OperationOutcome,
    OperationResult,
    OperationState,
    normalise_id,
)
from pkgpanel.core.queue import OperationHandle, QueuedOperation


@dataclass
class PackageRow:
    """What the package table shows for one package."""

    key: str
    app_id: str
    name: str
    desc: str = ""
    status: InstallStatus | None = None
    operation: OperationState | None = None
    outcome: OperationOutcome | None = None
    checking: bool = False

    @property
    def installed(self) -> bool:
        return self.status is not None and self.status.installed

    @property
    def busy(self) -> bool:
        return self.operation in (OperationState.PENDING, OperationState.RUNNING)


RowListener = Callable[[PackageRow], None]


class PanelStore:
    """Rows for the selected manager, kept in sync with probes and the queue."""

    def __init__(self, ctx: PanelContext, manager: Manager = Manager.WINGET) -> None:
        self.ctx = ctx
        self.manager = manager
        self.rows: dict[str, PackageRow] = {}
        self._listeners: List[RowListener] = []
        self.ctx.queue.subscribe(self._on_transition)

    def subscribe(self, listener: RowListener) -> None:
        self._listeners.append(listener)

    def load(self, manager: Manager | None = None) -> List[PackageRow]:
        """Rebuild rows from the catalog of ``manager``."""
        if manager is not None:
            self.manager = manager

        self.rows = {}
        for entry in self.ctx.catalog.list(self.manager):
            key = normalise_id(entry.app_id)
            cached = self.ctx.cache.peek(self.manager, entry.app_id)
            handle = self.ctx.queue.get(self.manager, entry.app_id)
            self.rows[key] = PackageRow(
                key=key,
                app_id=entry.app_id,
                name=entry.app_name,
                desc=entry.app_desc,
                status=cached.status if cached else None,
                operation=handle.state if handle else None,
            )
        return self.sorted_rows()

    def sorted_rows(self) -> List[PackageRow]:
        return sorted(self.rows.values(), key=lambda r: r.name.lower())

    def row(self, app_id: str) -> PackageRow | None:
        return self.rows.get(normalise_id(app_id))

    async def check_all(self, force_refresh: bool = False) -> BulkResult:
        """Bulk check every row, updating rows as probes finish."""
        for row in self.rows.values():
            row.checking = True
            self._emit(row)

        def on_progress(event) -> None:
            self._set_status(event.package_id, event.status)

        result = await self.ctx.get_bulk_status(
            self.manager,
            [r.app_id for r in self.sorted_rows()],
            force_refresh=force_refresh,
            on_progress=on_progress,
        )

        for row in self.rows.values():
            if row.checking:
                row.checking = False
                self._emit(row)
        return result

    async def refresh(self, app_id: str) -> InstallStatus:
        row = self.row(app_id)
        if row is not None:
            row.checking = True
            self._emit(row)
        status = await self.ctx.get_status(self.manager, app_id, force_refresh=True)
        self._set_status(app_id, status)
        return status

    def toggle(self, app_id: str) -> OperationHandle:
        """Queue the opposite of the row's current state.

        Raises:
            DuplicateOperationError: If the package already has an operation.
        """
        row = self.row(app_id)
        action = Action.UNINSTALL if row is not None and row.installed else Action.INSTALL
        return self.ctx.enqueue_operation(self.manager, app_id, action)

    def stop(self, app_id: str) -> bool:
        return self.ctx.cancel_operation(self.manager, app_id)

    def record_result(self, result: OperationResult) -> None:
        row = self.row(result.package_id)
        if row is None or result.manager is not self.manager:
            return
        row.outcome = result.outcome
        if result.final_status is not None:
            row.status = result.final_status
        self._emit(row)

    def _set_status(self, app_id: str, status: InstallStatus) -> None:
        row = self.row(app_id)
        if row is None:
            return
        row.status = status
        row.checking = False
        self._emit(row)

    def _on_transition(self, op: QueuedOperation) -> None:
        if op.manager is not self.manager:
            return
        row = self.row(op.package_id)
        if row is None:
            return
        row.operation = op.state
        if op.state is OperationState.STOPPED:
            row.outcome = None
        self._emit(row)

    def _emit(self, row: PackageRow) -> None:
        for listener in list(self._listeners):
            listener(row)
