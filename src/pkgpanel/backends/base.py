"""Backend protocol shared by the package manager integrations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from pkgpanel.backends.parsing import ParseResult, TabularStatusParser
from pkgpanel.core.models import Action, Manager


class PackageManagerBackend(Protocol):
    """How to talk to one package manager's command line tool."""

    manager: Manager
    bootstrap_package: str | None

    def probe_command(self, package_id: str) -> list[str]:
        """Command listing the local install state of one package."""
        ...

    def action_command(self, action: Action, package_id: str) -> list[str]:
        """Command installing or uninstalling one package."""
        ...

    def version_command(self) -> list[str]:
        """Command printing the tool's own version."""
        ...

    def parse_status(self, package_id: str, output: str) -> ParseResult:
        """Turn probe output into an InstallStatus and whether it is conclusive."""
        ...

    def detect_failure(self, output: str) -> str | None:
        """Return the failure sentinel found in output, if any."""
        ...

    def parse_version(self, output: str) -> str | None:
        """Extract the tool version from version command output."""
        ...

    def bootstrap_command(self, action: Action) -> list[str] | None:
        """Command installing or removing the tool itself, if supported."""
        ...


@dataclass
class CliBackend:
    """Backend described by its executable, parser and failure sentinels."""

    manager: Manager
    executable: str
    parser: TabularStatusParser
    failure_sentinels: tuple[str, ...] = field(default_factory=tuple)
    bootstrap_package: str | None = None

    def probe_command(self, package_id: str) -> list[str]:
        raise NotImplementedError

    def action_command(self, action: Action, package_id: str) -> list[str]:
        raise NotImplementedError

    def version_command(self) -> list[str]:
        return [self.executable, "--version"]

    def bootstrap_command(self, action: Action) -> list[str] | None:
        return None

    def parse_status(self, package_id: str, output: str) -> ParseResult:
        return self.parser.scan(package_id, output)

    def detect_failure(self, output: str) -> str | None:
        lowered = output.casefold()
        for sentinel in self.failure_sentinels:
            if sentinel.casefold() in lowered:
                return sentinel
        return None

    def parse_version(self, output: str) -> str | None:
        for line in output.splitlines():
            line = line.strip()
            if line:
                return line.lstrip("vV")
        return None
