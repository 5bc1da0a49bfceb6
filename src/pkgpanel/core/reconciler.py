"""Bulk status checks over many packages with partial-failure accounting."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable

from pkgpanel.core.config import Settings
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import (
    BulkProgress,
    BulkResult,
    InstallStatus,
    Manager,
    PackageError,
    PackageResult,
    normalise_id,
)
from pkgpanel.core.prober import StatusProber

log = get_logger(__name__)

ProgressCallback = Callable[[BulkProgress], None]


def batched(items: list[str], size: int) -> Iterable[list[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class BulkReconciler:
    """Probe a list of packages in small batches.

    Probes inside a batch run concurrently, batches run one after the
    other with a short pause in between. A failing probe never aborts the
    rest of the check; running out of the cumulative time budget does,
    but whatever was collected so far is still returned.
    """

    def __init__(
        self,
        prober: StatusProber,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.prober = prober
        self.settings = settings
        self._clock = clock

    async def check(
        self,
        manager: Manager,
        package_ids: Iterable[str],
        force_refresh: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BulkResult:
        """Check the install status of many packages.

        Args:
            manager: Package manager to ask.
            package_ids: Identifiers to probe; case-insensitive duplicates
                are probed once.
            force_refresh: Ignore cached statuses.
            on_progress: Called after every completed probe.

        Returns:
            BulkResult with results in input order.
        """
        ids = _unique(package_ids)
        total = len(ids)
        start = time.perf_counter()
        deadline = self._clock() + self.settings.bulk_timeout
        log.info(
            "bulk_check_start",
            manager=manager.value,
            count=total,
            force_refresh=force_refresh
        )

        collected: dict[str, InstallStatus] = {}
        failures: dict[str, str] = {}
        timed_out = False

        async def probe_one(package_id: str) -> None:
            try:
                status = await self.prober.probe(
                    manager,
                    package_id,
                    force_refresh=force_refresh,
                    max_age=self.settings.bulk_ttl,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error(
                    "bulk_probe_error",
                    manager=manager.value,
                    package=package_id,
                    error=str(e),
                    exc_info=True
                )
                status = InstallStatus.failed(str(e) or type(e).__name__)

            collected[package_id] = status
            if status.error is not None:
                failures[package_id] = status.error
            if on_progress is not None:
                on_progress(BulkProgress(len(collected), total, package_id, status))

        for index, batch in enumerate(batched(ids, max(1, self.settings.batch_size))):
            if index and self.settings.batch_delay > 0:
                await asyncio.sleep(self.settings.batch_delay)

            remaining = deadline - self._clock()
            if remaining <= 0:
                timed_out = True
                break

            tasks = [asyncio.create_task(probe_one(pid)) for pid in batch]
            _, pending = await asyncio.wait(tasks, timeout=remaining)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                timed_out = True
                break

        result = BulkResult(
            success=not timed_out,
            results=[PackageResult(pid, collected[pid]) for pid in ids if pid in collected],
            errors=[PackageError(pid, failures[pid]) for pid in ids if pid in failures],
            timed_out=timed_out,
        )
        duration_ms = int((time.perf_counter() - start) * 1000)

        if timed_out:
            result.error = f"Bulk status check timed out after {self.settings.bulk_timeout:g}s"
            log.error(
                "bulk_check_timeout",
                manager=manager.value,
                completed=len(collected),
                count=total,
                duration_ms=duration_ms
            )
        else:
            log.info(
                "bulk_check_complete",
                manager=manager.value,
                count=total,
                failed=len(result.errors),
                duration_ms=duration_ms
            )

        return result


def _unique(package_ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ids = []
    for pid in package_ids:
        key = normalise_id(pid)
        if key and key not in seen:
            seen.add(key)
            ids.append(pid.strip())
    return ids
