"""Tests for bulk status checks."""

from __future__ import annotations

import asyncio
import dataclasses

import pytest

from pkgpanel.backends.registry import default_backends
from pkgpanel.core.cache import StatusCache
from pkgpanel.core.config import Settings
from pkgpanel.core.models import BulkProgress, Manager, ProbeState
from pkgpanel.core.prober import StatusProber
from pkgpanel.core.reconciler import BulkReconciler, batched

from conftest import FakeRunner, winget_missing, winget_row


def make_reconciler(settings: Settings, runner) -> BulkReconciler:
    prober = StatusProber(StatusCache(), default_backends(), settings, runner)
    return BulkReconciler(prober, settings)


def test_batched() -> None:
    """Test ids are split into fixed-size batches."""
    assert list(batched(["a", "b", "c", "d", "e"], 2)) == [["a", "b"], ["c", "d"], ["e"]]


class TestBulkReconciler:
    """Tests for BulkReconciler.check."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test every id gets a result, in the order given."""
        fake_runner.add("list", "C", winget_row("C", "3.0"))
        fake_runner.add("list", "A", winget_missing())
        fake_runner.add("list", "B", winget_row("B", "2.0"))
        reconciler = make_reconciler(settings, fake_runner)

        result = await reconciler.check(Manager.WINGET, ["C", "A", "B"])

        assert result.success is True
        assert [r.app_id for r in result.results] == ["C", "A", "B"]
        assert [r.status.installed for r in result.results] == [True, False, True]
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test a probe that raises is reported without losing the others."""
        fake_runner.add("list", "A", winget_row("A", "1.0"))
        fake_runner.add("list", "C", winget_missing())
        reconciler = make_reconciler(settings, fake_runner)
        original = reconciler.prober.probe

        async def probe(manager, package_id, **kwargs):
            if package_id == "B":
                raise RuntimeError("boom")
            return await original(manager, package_id, **kwargs)

        reconciler.prober.probe = probe

        result = await reconciler.check(Manager.WINGET, ["A", "B", "C"])

        assert result.success is True
        assert [r.app_id for r in result.results] == ["A", "B", "C"]
        assert result.results[1].status.state is ProbeState.PROBE_FAILED
        assert [e.app_id for e in result.errors] == ["B"]
        assert result.errors[0].error == "boom"
        assert result.results[0].status.installed is True
        assert result.results[2].status.state is ProbeState.NOT_INSTALLED

    @pytest.mark.asyncio
    async def test_duplicates_probed_once(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test case-insensitive duplicates collapse to the first spelling."""
        fake_runner.add("list", "Foo.Bar", winget_missing())
        reconciler = make_reconciler(settings, fake_runner)

        result = await reconciler.check(Manager.WINGET, ["Foo.Bar", "foo.bar", " FOO.BAR "])

        assert [r.app_id for r in result.results] == ["Foo.Bar"]
        assert len(fake_runner.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_input(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test an empty list succeeds with nothing to report."""
        result = await make_reconciler(settings, fake_runner).check(Manager.WINGET, [])

        assert result.success is True
        assert result.results == []
        assert fake_runner.calls == []

    @pytest.mark.asyncio
    async def test_batch_size_limits_concurrency(self, settings: Settings) -> None:
        """Test no more than batch_size probes run at once."""
        settings = dataclasses.replace(settings, batch_size=2)
        running = 0
        peak = 0

        async def runner(*cmd, timeout=None):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return winget_missing()

        result = await make_reconciler(settings, runner).check(Manager.WINGET, list("abcde"))

        assert len(result.results) == 5
        assert peak == 2

    @pytest.mark.asyncio
    async def test_progress_reported_per_probe(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test progress counts up to the total."""
        fake_runner.default = winget_missing()
        events: list[BulkProgress] = []

        await make_reconciler(settings, fake_runner).check(
            Manager.WINGET, ["a", "b", "c", "d"], on_progress=events.append
        )

        assert [e.completed for e in events] == [1, 2, 3, 4]
        assert all(e.total == 4 for e in events)
        assert events[-1].percent == 100.0
        assert {e.package_id for e in events} == {"a", "b", "c", "d"}

    @pytest.mark.asyncio
    async def test_uses_bulk_window(self, settings: Settings, fake_runner: FakeRunner) -> None:
        """Test cached statuses are reused and force_refresh re-probes."""
        fake_runner.default = winget_missing()
        reconciler = make_reconciler(settings, fake_runner)

        await reconciler.check(Manager.WINGET, ["a", "b"])
        await reconciler.check(Manager.WINGET, ["a", "b"])
        assert len(fake_runner.calls) == 2

        await reconciler.check(Manager.WINGET, ["a", "b"], force_refresh=True)
        assert len(fake_runner.calls) == 4

    @pytest.mark.asyncio
    async def test_timeout_returns_partial_results(self, settings: Settings) -> None:
        """Test the time budget stops the check but keeps finished probes."""
        settings = dataclasses.replace(settings, batch_size=2, bulk_timeout=0.05)
        hang = asyncio.Event()
        runner = FakeRunner()
        runner.add("list", "a", winget_row("a", "1.0"))
        runner.add("list", "b", hang.wait)
        runner.add("list", "c", winget_missing())

        result = await make_reconciler(settings, runner).check(Manager.WINGET, ["a", "b", "c"])

        assert result.success is False
        assert result.timed_out is True
        assert "timed out" in result.error
        assert [r.app_id for r in result.results] == ["a"]
        assert runner.count("list", "c") == 0
