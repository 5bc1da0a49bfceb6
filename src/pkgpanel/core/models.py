"""Data models for package status, bulk checks and queued operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Manager(Enum):
    """Supported package managers."""

    WINGET = "winget"
    CHOCO = "choco"


class Action(Enum):
    """Mutating operations the queue can run."""

    INSTALL = "install"
    UNINSTALL = "uninstall"

    @property
    def expects_installed(self) -> bool:
        """Post-condition checked by the verification poll."""
        return self is Action.INSTALL


class ProbeState(Enum):
    """What a probe established about a package."""

    INSTALLED = "installed"
    NOT_INSTALLED = "not_installed"
    PROBE_FAILED = "probe_failed"


class OperationState(Enum):
    """Lifecycle of a queued operation."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.SUCCEEDED, OperationState.FAILED, OperationState.STOPPED)


class OperationOutcome(Enum):
    """Result of one install/uninstall run."""

    SUCCEEDED = "succeeded"
    UNVERIFIED = "unverified"
    FAILED = "failed"


def normalise_id(package_id: str) -> str:
    """Key used to compare package identifiers.

    Identifiers are compared case-insensitively for every manager.
    """
    return package_id.strip().casefold()


@dataclass(frozen=True)
class InstallStatus:
    """Last known install status of a package.

    ``version`` is only set for installed packages. ``error`` marks a
    failed probe, which is a different condition from a package that is
    definitely not installed.
    """

    installed: bool
    version: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.version is not None and not self.installed:
            raise ValueError("version is only valid for installed packages")

    @classmethod
    def not_installed(cls) -> InstallStatus:
        return cls(installed=False)

    @classmethod
    def failed(cls, error: str) -> InstallStatus:
        return cls(installed=False, error=error)

    @property
    def state(self) -> ProbeState:
        if self.error is not None:
            return ProbeState.PROBE_FAILED
        return ProbeState.INSTALLED if self.installed else ProbeState.NOT_INSTALLED

    def to_dict(self) -> dict[str, Any]:
        return {"installed": self.installed, "version": self.version, "error": self.error}


@dataclass(frozen=True)
class CacheEntry:
    """Cached probe result for one (manager, package) key."""

    manager: Manager
    package_id: str
    status: InstallStatus
    fetched_at: float


@dataclass
class PackageResult:
    """Status of one package within a bulk check."""

    app_id: str
    status: InstallStatus

    def to_dict(self) -> dict[str, Any]:
        return {"appId": self.app_id, "status": self.status.to_dict()}


@dataclass
class PackageError:
    """Failure of one package within a bulk check."""

    app_id: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"appId": self.app_id, "error": self.error}


@dataclass
class BulkResult:
    """Aggregate result of a bulk status check.

    ``success`` is False only when the check as a whole did not finish,
    e.g. it hit the cumulative timeout. Individual probe failures are
    listed in ``errors`` and also appear as failed statuses in
    ``results``.
    """

    success: bool
    results: list[PackageResult] = field(default_factory=list)
    errors: list[PackageError] = field(default_factory=list)
    timed_out: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class BulkProgress:
    """Progress event emitted after each completed probe."""

    completed: int
    total: int
    package_id: str
    status: InstallStatus

    @property
    def percent(self) -> float:
        return 100.0 if self.total == 0 else self.completed * 100.0 / self.total


@dataclass
class OperationResult:
    """Outcome of driving one install/uninstall command to completion.

    ``success`` reflects the command itself. ``verified`` tells whether
    the post-condition was confirmed by re-probing; a successful but
    unverified run is reported as ``OperationOutcome.UNVERIFIED``.
    """

    manager: Manager
    package_id: str
    action: Action
    success: bool
    message: str
    final_status: InstallStatus | None = None
    verified: bool = False
    output: str = ""

    @property
    def outcome(self) -> OperationOutcome:
        if not self.success:
            return OperationOutcome.FAILED
        return OperationOutcome.SUCCEEDED if self.verified else OperationOutcome.UNVERIFIED

    @property
    def installed(self) -> bool | None:
        return None if self.final_status is None else self.final_status.installed

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "outcome": self.outcome.value,
            "verified": self.verified,
            "installed": self.installed,
            "finalStatus": self.final_status.to_dict() if self.final_status else None,
        }


@dataclass
class CatalogEntry:
    """A package shown in the control panel for one manager."""

    app_id: str
    app_name: str
    app_desc: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"app_id": self.app_id, "app_name": self.app_name, "app_desc": self.app_desc}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CatalogEntry:
        return cls(
            app_id=str(data["app_id"]),
            app_name=str(data.get("app_name") or data["app_id"]),
            app_desc=str(data.get("app_desc") or ""),
        )


@dataclass(frozen=True)
class ManagerInfo:
    """Availability of a package manager executable."""

    manager: Manager
    installed: bool
    version: str | None = None
    error: str | None = None
