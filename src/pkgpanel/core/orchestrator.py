"""Run install/uninstall commands and verify that they took effect."""

from __future__ import annotations

import asyncio
import time

from pkgpanel.core.config import Settings
from pkgpanel.core.errors import (
    BootstrapNotSupportedError,
    ManagerCommandError,
    ManagerNotAvailableError,
    TransientError,
)
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import (
    Action,
    InstallStatus,
    Manager,
    ManagerInfo,
    OperationOutcome,
    OperationResult,
)
from pkgpanel.core.prober import StatusProber
from pkgpanel.core.shell import CommandRunner, run_capture

log = get_logger(__name__)


class OperationFailedError(ManagerCommandError):
    """An install/uninstall run ended in failure; carries its result."""
    def __init__(self, result: OperationResult) -> None:
        self.result = result
        super().__init__(
            result.message,
            context={
                "manager": result.manager.value,
                "package": result.package_id,
                "action": result.action.value,
            },
        )


class OperationOrchestrator:
    """Drive an install/uninstall command to completion.

    Exit code 0 does not prove the package changed state, so a successful
    command is followed by forced re-probes until the expected state shows
    up or the verification budget runs out.
    """

    def __init__(
        self,
        prober: StatusProber,
        settings: Settings,
        runner: CommandRunner = run_capture,
    ) -> None:
        self.prober = prober
        self.settings = settings
        self.runner = runner

    async def run(self, manager: Manager, package_id: str, action: Action) -> OperationResult:
        """Run the command and verify its post-condition.

        Args:
            manager: Package manager to use.
            package_id: Package identifier.
            action: Install or uninstall.

        Returns:
            OperationResult. Command failures are reported in the result
            rather than raised.
        """
        backend = self.prober.backend(manager)
        cmd = backend.action_command(action, package_id)
        start = time.perf_counter()
        log.info("operation_start", manager=manager.value, package=package_id, action=action.value)

        def failed(message: str, output: str = "") -> OperationResult:
            log.error(
                "operation_failed",
                manager=manager.value,
                package=package_id,
                action=action.value,
                error=message
            )
            return OperationResult(manager, package_id, action, success=False, message=message, output=output)

        try:
            result = await self.runner(*cmd, timeout=self.settings.operation_timeout)
        except (TransientError, ManagerNotAvailableError) as e:
            return failed(e.message)

        sentinel = backend.detect_failure(result.output)
        if sentinel is not None:
            return failed(f"{action.value} of {package_id} failed: output reported '{sentinel}'", result.output)
        if not result.ok:
            return failed(
                f"{action.value} of {package_id} failed with exit code {result.returncode}",
                result.output,
            )

        status, verified = await self.verify(manager, package_id, action)
        duration_ms = int((time.perf_counter() - start) * 1000)

        if verified:
            message = (
                f"Installed {package_id}" + (f" (version {status.version})" if status.version else "")
                if action is Action.INSTALL
                else f"Uninstalled {package_id}"
            )
            log.info(
                "operation_complete",
                manager=manager.value,
                package=package_id,
                action=action.value,
                version=status.version,
                duration_ms=duration_ms
            )
        else:
            message = (
                f"{action.value} of {package_id} reported success but the package status "
                f"did not confirm it after {self.settings.max_verify_retries} checks"
            )
            log.warning(
                "operation_unverified",
                manager=manager.value,
                package=package_id,
                action=action.value,
                installed=status.installed,
                error=status.error,
                duration_ms=duration_ms
            )

        return OperationResult(
            manager,
            package_id,
            action,
            success=True,
            message=message,
            final_status=status,
            verified=verified,
            output=result.output,
        )

    async def verify(
        self, manager: Manager, package_id: str, action: Action
    ) -> tuple[InstallStatus, bool]:
        """Poll the package status until it matches the action.

        Returns:
            The last observed status and whether it matched.
        """
        attempts = max(1, self.settings.max_verify_retries)
        status = InstallStatus.not_installed()

        for attempt in range(1, attempts + 1):
            status = await self.prober.probe(manager, package_id, force_refresh=True)
            if status.error is None and status.installed == action.expects_installed:
                return status, True

            log.debug(
                "verification_pending",
                manager=manager.value,
                package=package_id,
                attempt=attempt,
                max_attempts=attempts,
                installed=status.installed
            )
            if attempt < attempts:
                await asyncio.sleep(self.settings.verify_delay)

        return status, False

    async def run_bootstrap(self, manager: Manager, action: Action) -> OperationResult:
        """Install or remove the package manager itself and verify it.

        The tool counts as present when its version command runs, so
        verification polls that instead of a package list.

        Raises:
            BootstrapNotSupportedError: If the manager cannot be bootstrapped.
        """
        backend = self.prober.backend(manager)
        cmd = backend.bootstrap_command(action)
        package_id = backend.bootstrap_package
        if cmd is None or package_id is None:
            raise BootstrapNotSupportedError(manager.value)

        start = time.perf_counter()
        log.info("bootstrap_start", manager=manager.value, action=action.value)

        def failed(message: str, output: str = "") -> OperationResult:
            log.error("bootstrap_failed", manager=manager.value, action=action.value, error=message)
            return OperationResult(manager, package_id, action, success=False, message=message, output=output)

        try:
            result = await self.runner(*cmd, timeout=self.settings.operation_timeout)
        except (TransientError, ManagerNotAvailableError) as e:
            return failed(e.message)

        if not result.ok:
            return failed(
                f"{action.value} of {package_id} failed with exit code {result.returncode}",
                result.output,
            )

        info, verified = await self.verify_manager(manager, action)
        status = InstallStatus(installed=info.installed, version=info.version if info.installed else None)
        duration_ms = int((time.perf_counter() - start) * 1000)

        if verified:
            message = (
                f"Installed {package_id}" + (f" (version {info.version})" if info.version else "")
                if action is Action.INSTALL
                else f"Uninstalled {package_id}"
            )
            log.info(
                "bootstrap_complete",
                manager=manager.value,
                action=action.value,
                version=info.version,
                duration_ms=duration_ms
            )
        else:
            check = " ".join(backend.version_command())
            message = (
                f"{action.value} of {package_id} reported success but '{check}' "
                f"did not confirm it after {self.settings.max_verify_retries} checks"
            )
            log.warning(
                "bootstrap_unverified",
                manager=manager.value,
                action=action.value,
                installed=info.installed,
                duration_ms=duration_ms
            )

        return OperationResult(
            manager,
            package_id,
            action,
            success=True,
            message=message,
            final_status=status,
            verified=verified,
            output=result.output,
        )

    async def verify_manager(self, manager: Manager, action: Action) -> tuple[ManagerInfo, bool]:
        """Poll the manager's version command until availability matches the action."""
        attempts = max(1, self.settings.max_verify_retries)
        info = ManagerInfo(manager=manager, installed=not action.expects_installed)

        for attempt in range(1, attempts + 1):
            info = await self.prober.version(manager)
            if info.installed == action.expects_installed:
                return info, True

            log.debug(
                "bootstrap_verification_pending",
                manager=manager.value,
                attempt=attempt,
                max_attempts=attempts,
                installed=info.installed
            )
            if attempt < attempts:
                await asyncio.sleep(self.settings.verify_delay)

        return info, False

    async def perform(self, manager: Manager, package_id: str, action: Action) -> OperationResult:
        """Like ``run`` but raise when the command failed, for retrying callers.

        Raises:
            OperationFailedError: If the outcome is a failure.
        """
        result = await self.run(manager, package_id, action)
        if result.outcome is OperationOutcome.FAILED:
            raise OperationFailedError(result)
        return result

    async def perform_bootstrap(self, manager: Manager, action: Action) -> OperationResult:
        """Like ``run_bootstrap`` but raise on failure, for the queue."""
        result = await self.run_bootstrap(manager, action)
        if result.outcome is OperationOutcome.FAILED:
            raise OperationFailedError(result)
        return result
