"""Tests for the control panel row store."""

from __future__ import annotations

import asyncio

import pytest

from pkgpanel.core.config import Settings
from pkgpanel.core.context import PanelContext
from pkgpanel.core.models import Action, CatalogEntry, Manager, OperationOutcome, OperationState, ProbeState
from pkgpanel.core.store import PackageRow, PanelStore

from conftest import FakeRunner, ok, wait_until, winget_missing, winget_row


@pytest.fixture
def ctx(settings: Settings, fake_runner: FakeRunner) -> PanelContext:
    ctx = PanelContext(settings, runner=fake_runner)
    ctx.catalog.add(Manager.WINGET, CatalogEntry("Zed.Editor", "zed"))
    ctx.catalog.add(Manager.WINGET, CatalogEntry("Foo.Bar", "Foo"))
    ctx.catalog.add(Manager.CHOCO, CatalogEntry("git", "Git"))
    return ctx


class TestPanelStore:
    """Tests for PanelStore."""

    def test_load_sorted_by_name(self, ctx: PanelContext) -> None:
        """Test rows come from the manager's catalog, sorted by name."""
        rows = PanelStore(ctx).load()

        assert [r.app_id for r in rows] == ["Foo.Bar", "Zed.Editor"]
        assert all(r.status is None for r in rows)

    def test_load_other_manager(self, ctx: PanelContext) -> None:
        """Test switching manager reloads its catalog."""
        store = PanelStore(ctx)
        rows = store.load(Manager.CHOCO)

        assert store.manager is Manager.CHOCO
        assert [r.app_id for r in rows] == ["git"]

    @pytest.mark.asyncio
    async def test_check_all_updates_rows(self, ctx: PanelContext, fake_runner: FakeRunner) -> None:
        """Test a bulk check fills in every row and notifies listeners."""
        fake_runner.add("list", "Foo.Bar", winget_row("Foo.Bar", "1.0"))
        fake_runner.add("list", "Zed.Editor", winget_missing())
        store = PanelStore(ctx)
        store.load()
        changed: list[PackageRow] = []
        store.subscribe(changed.append)

        result = await store.check_all()

        assert result.success is True
        assert store.row("foo.bar").status.installed is True
        assert store.row("Zed.Editor").status.state is ProbeState.NOT_INSTALLED
        assert not any(r.checking for r in store.rows.values())
        assert {r.app_id for r in changed} == {"Foo.Bar", "Zed.Editor"}

    @pytest.mark.asyncio
    async def test_toggle_picks_action(self, ctx: PanelContext, fake_runner: FakeRunner) -> None:
        """Test toggle uninstalls installed rows and installs the rest."""
        fake_runner.add("list", "Foo.Bar", winget_row("Foo.Bar", "1.0"))
        fake_runner.add("list", "Zed.Editor", winget_missing())
        store = PanelStore(ctx)
        store.load()
        await store.check_all()

        async with ctx:
            remove = store.toggle("Foo.Bar")
            add = store.toggle("Zed.Editor")

            assert remove.action is Action.UNINSTALL
            assert add.action is Action.INSTALL
            assert store.stop("Foo.Bar") is True
            assert store.stop("Zed.Editor") is True

    @pytest.mark.asyncio
    async def test_rows_follow_queue(self, ctx: PanelContext, fake_runner: FakeRunner) -> None:
        """Test queue transitions show up on the row."""
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return ok("Successfully installed")

        fake_runner.add("install", "Foo.Bar", slow)
        fake_runner.add("list", "Foo.Bar", winget_row("Foo.Bar", "1.0"))
        store = PanelStore(ctx)
        store.load()

        async with ctx:
            handle = store.toggle("Foo.Bar")
            row = store.row("Foo.Bar")
            await wait_until(lambda: row.operation is OperationState.RUNNING)
            assert row.busy

            release.set()
            result = await handle
            store.record_result(result)

        assert row.operation is OperationState.SUCCEEDED
        assert row.outcome is OperationOutcome.SUCCEEDED
        assert row.installed is True
        assert not row.busy

    @pytest.mark.asyncio
    async def test_stop_marks_row(self, ctx: PanelContext, fake_runner: FakeRunner) -> None:
        """Test stopping an operation shows the row as stopped."""
        fake_runner.add("install", "Foo.Bar", asyncio.Event().wait)
        store = PanelStore(ctx)
        store.load()

        async with ctx:
            store.toggle("Foo.Bar")
            assert store.stop("Foo.Bar") is True

        assert store.row("Foo.Bar").operation is OperationState.STOPPED

    @pytest.mark.asyncio
    async def test_other_manager_transitions_ignored(self, ctx: PanelContext) -> None:
        """Test operations on another manager leave the rows alone."""
        store = PanelStore(ctx)
        store.load()

        async with ctx:
            ctx.enqueue_operation(Manager.CHOCO, "Foo.Bar", Action.INSTALL)
            ctx.cancel_operation(Manager.CHOCO, "Foo.Bar")

        assert store.row("Foo.Bar").operation is None
