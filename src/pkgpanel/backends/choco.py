"""Chocolatey integration."""

from __future__ import annotations

import re

from pkgpanel.backends.base import CliBackend
from pkgpanel.backends.parsing import ANY_GAP, TabularStatusParser
from pkgpanel.core.models import Action, Manager

NOT_FOUND = re.compile(r"(?<!\d)0 packages installed", re.IGNORECASE)

POWERSHELL = ["powershell", "-NoProfile", "-InputFormat", "None", "-ExecutionPolicy", "Bypass", "-Command"]

# Official community installer, TLS 1.2 forced for older Windows PowerShell.
INSTALL_SCRIPT = (
    "[System.Net.ServicePointManager]::SecurityProtocol = "
    "[System.Net.ServicePointManager]::SecurityProtocol -bor 3072; "
    "iex ((New-Object System.Net.WebClient).DownloadString("
    "'https://community.chocolatey.org/install.ps1'))"
)

UNINSTALL_SCRIPT = (
    "if (-not $env:ChocolateyInstall -or -not (Test-Path $env:ChocolateyInstall)) { exit 1 }; "
    "Remove-Item -Recurse -Force $env:ChocolateyInstall"
)

# "name version" rows between the banner and the summary line.
parser = TabularStatusParser(
    not_found_patterns=(NOT_FOUND,),
    column_counts=(2,),
    id_columns=(0,),
    version_column=1,
    header_patterns=(
        re.compile(r"^Chocolatey v\d", re.IGNORECASE),
        re.compile(r"^\d+ packages? installed", re.IGNORECASE),
    ),
    splitter=ANY_GAP,
)


class ChocoBackend(CliBackend):
    """choco list/install/uninstall against the local package store."""

    def __init__(self, executable: str = "choco") -> None:
        super().__init__(
            manager=Manager.CHOCO,
            executable=executable,
            parser=parser,
            failure_sentinels=(
                "ERROR:",
                "Access to the path",
                "is denied",
                "was NOT successful",
                "not installed. Cannot uninstall",
            ),
            bootstrap_package="chocolatey",
        )

    def probe_command(self, package_id: str) -> list[str]:
        return [self.executable, "list", "--exact", package_id, "--no-color"]

    def action_command(self, action: Action, package_id: str) -> list[str]:
        return [self.executable, action.value, package_id, "-y", "--no-progress", "--no-color"]

    def bootstrap_command(self, action: Action) -> list[str]:
        script = INSTALL_SCRIPT if action is Action.INSTALL else UNINSTALL_SCRIPT
        return [*POWERSHELL, script]
