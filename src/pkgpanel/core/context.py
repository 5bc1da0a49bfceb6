"""Process-scoped service context wiring cache, prober, reconciler and queue."""

from __future__ import annotations

import time
from typing import Any, Iterable

from pkgpanel.backends.base import PackageManagerBackend
from pkgpanel.backends.registry import default_backends, parse_manager
from pkgpanel.core.cache import StatusCache
from pkgpanel.core.catalog import PackageCatalog
from pkgpanel.core.config import Settings
from pkgpanel.core.errors import BootstrapNotSupportedError
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import Action, BulkResult, InstallStatus, Manager, ManagerInfo
from pkgpanel.core.orchestrator import OperationOrchestrator
from pkgpanel.core.prober import StatusProber
from pkgpanel.core.queue import OperationHandle, OperationQueue
from pkgpanel.core.reconciler import BulkReconciler, ProgressCallback
from pkgpanel.core.shell import CommandRunner, run_capture

log = get_logger(__name__)


class PanelContext:
    """Owns the shared state of one process and exposes its operations.

    Built once at startup and handed to whatever front end drives it.
    Use it as an async context manager so the queue worker is stopped on
    exit.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        backends: dict[Manager, PackageManagerBackend] | None = None,
        runner: CommandRunner = run_capture,
        catalog: PackageCatalog | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.cache = StatusCache()
        self.prober = StatusProber(self.cache, backends or default_backends(), self.settings, runner)
        self.reconciler = BulkReconciler(self.prober, self.settings)
        self.orchestrator = OperationOrchestrator(self.prober, self.settings, runner)
        self.queue = OperationQueue(self.settings, cache=self.cache)
        self.catalog = catalog or PackageCatalog(self.settings.catalog_dir)

    async def __aenter__(self) -> PanelContext:
        self.queue.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.queue.aclose()

    async def get_status(
        self, manager: Manager | str, package_id: str, force_refresh: bool = False
    ) -> InstallStatus:
        """Status of one package, served from cache inside the window."""
        return await self.prober.probe(parse_manager(manager), package_id, force_refresh=force_refresh)

    async def get_bulk_status(
        self,
        manager: Manager | str,
        package_ids: Iterable[str] | None = None,
        force_refresh: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BulkResult:
        """Status of many packages; defaults to the manager's catalog."""
        manager = parse_manager(manager)
        ids = self.catalog.ids(manager) if package_ids is None else list(package_ids)
        return await self.reconciler.check(manager, ids, force_refresh=force_refresh, on_progress=on_progress)

    def enqueue_operation(
        self, manager: Manager | str, package_id: str, action: Action | str
    ) -> OperationHandle:
        """Queue an install or uninstall.

        Raises:
            DuplicateOperationError: If one is already in flight for the package.
        """
        manager = parse_manager(manager)
        action = Action(action) if isinstance(action, str) else action

        async def job():
            return await self.orchestrator.perform(manager, package_id, action)

        return self.queue.enqueue(manager, package_id, action, job)

    def enqueue_manager_operation(self, manager: Manager | str, action: Action | str) -> OperationHandle:
        """Queue installing or removing the package manager itself.

        The operation shares the queue with package operations, keyed
        under the manager's own package id.

        Raises:
            BootstrapNotSupportedError: If the manager cannot be bootstrapped.
            DuplicateOperationError: If one is already in flight.
        """
        manager = parse_manager(manager)
        action = Action(action) if isinstance(action, str) else action
        package_id = self.prober.backend(manager).bootstrap_package
        if package_id is None:
            raise BootstrapNotSupportedError(manager.value)

        async def job():
            return await self.orchestrator.perform_bootstrap(manager, action)

        return self.queue.enqueue(manager, package_id, action, job)

    def cancel_operation(self, manager: Manager | str, package_id: str) -> bool:
        """Stop the in-flight operation for a package, if any."""
        return self.queue.stop(parse_manager(manager), package_id)

    async def manager_version(self, manager: Manager | str) -> ManagerInfo:
        start = time.perf_counter()
        info = await self.prober.version(parse_manager(manager))
        log.debug(
            "manager_version_checked",
            manager=info.manager.value,
            installed=info.installed,
            duration_ms=int((time.perf_counter() - start) * 1000)
        )
        return info
