"""Single-package status probing against the package manager CLIs."""

from __future__ import annotations

import time

from pkgpanel.backends.base import PackageManagerBackend
from pkgpanel.core.cache import StatusCache
from pkgpanel.core.config import Settings
from pkgpanel.core.errors import (
    ManagerCommandError,
    ManagerNotAvailableError,
    OutputParseError,
    PanelError,
    TransientError,
    UnknownManagerError,
    retry_on_transient,
)
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import InstallStatus, Manager, ManagerInfo
from pkgpanel.core.shell import CommandRunner, run_capture

log = get_logger(__name__)


class StatusProber:
    """Probe one package, consulting and refreshing the status cache."""

    def __init__(
        self,
        cache: StatusCache,
        backends: dict[Manager, PackageManagerBackend],
        settings: Settings,
        runner: CommandRunner = run_capture,
    ) -> None:
        self.cache = cache
        self.backends = backends
        self.settings = settings
        self.runner = runner

    def backend(self, manager: Manager) -> PackageManagerBackend:
        try:
            return self.backends[manager]
        except KeyError:
            raise UnknownManagerError(manager.value) from None

    async def probe(
        self,
        manager: Manager,
        package_id: str,
        force_refresh: bool = False,
        max_age: float | None = None,
    ) -> InstallStatus:
        """Get the install status of one package.

        A cached status younger than the staleness window is returned
        without running anything. Otherwise the list command runs and its
        output is parsed. Command failures are not raised: they produce a
        status with ``error`` set, which is cached like any other result
        so a broken command is not hammered by repeated checks.

        Args:
            manager: Package manager to ask.
            package_id: Package identifier.
            force_refresh: Ignore the cache.
            max_age: Staleness window in seconds, defaults to the
                single-package window.

        Returns:
            The InstallStatus of the package.
        """
        backend = self.backend(manager)
        window = self.settings.single_ttl if max_age is None else max_age

        if not force_refresh:
            entry = self.cache.get(manager, package_id, window)
            if entry is not None:
                return entry.status

        generation = self.cache.generation(manager)
        start = time.perf_counter()
        log.debug("probe_start", manager=manager.value, package=package_id, force_refresh=force_refresh)

        try:
            status = await self._run_probe(backend, package_id)
        except (TransientError, ManagerNotAvailableError) as e:
            log.warning(
                "probe_failed",
                manager=manager.value,
                package=package_id,
                error=str(e)
            )
            status = InstallStatus.failed(e.message)
        except Exception as e:
            log.error(
                "probe_error",
                manager=manager.value,
                package=package_id,
                error=str(e),
                exc_info=True
            )
            status = InstallStatus.failed(str(e) or type(e).__name__)

        self.cache.put(manager, package_id, status, generation=generation)

        duration_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "probe_complete",
            manager=manager.value,
            package=package_id,
            state=status.state.value,
            version=status.version,
            duration_ms=duration_ms
        )
        return status

    async def _run_probe(self, backend: PackageManagerBackend, package_id: str) -> InstallStatus:
        cmd = backend.probe_command(package_id)
        result = await self.runner(*cmd, timeout=self.settings.command_timeout)

        def command_failed() -> ManagerCommandError:
            return ManagerCommandError(
                command=" ".join(cmd),
                returncode=result.returncode,
                error=result.output[:200],
            )

        try:
            parsed = backend.parse_status(package_id, result.output)
        except OutputParseError as e:
            if not result.ok:
                raise command_failed() from e
            raise

        # A failed command only counts when its output named the package.
        if not result.ok and not parsed.conclusive:
            raise command_failed()
        return parsed.status

    async def version(self, manager: Manager) -> ManagerInfo:
        """Check whether a package manager is available and its version.

        Args:
            manager: Package manager to check.

        Returns:
            ManagerInfo, with ``installed`` False when the tool cannot be
            run.
        """
        backend = self.backend(manager)
        try:
            output = await self._version_output(backend)
        except PanelError as e:
            log.warning("manager_unavailable", manager=manager.value, error=str(e))
            return ManagerInfo(manager=manager, installed=False, error=e.message)

        version = backend.parse_version(output)
        log.info("manager_version", manager=manager.value, version=version)
        return ManagerInfo(manager=manager, installed=version is not None, version=version)

    @retry_on_transient(max_retries=3, base_delay=1.0)
    async def _version_output(self, backend: PackageManagerBackend) -> str:
        cmd = backend.version_command()
        result = await self.runner(*cmd, timeout=self.settings.command_timeout)
        if not result.ok:
            raise ManagerCommandError(
                command=" ".join(cmd),
                returncode=result.returncode,
                error=result.output[:200],
            )
        return result.output
