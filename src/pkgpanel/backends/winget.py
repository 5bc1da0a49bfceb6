"""Windows Package Manager (winget) integration."""

from __future__ import annotations

import re

from pkgpanel.backends.base import CliBackend
from pkgpanel.backends.parsing import WIDE_GAP, TabularStatusParser
from pkgpanel.core.models import Action, Manager

NOT_FOUND = "No installed package found matching input criteria"

AGREEMENTS = ["--accept-source-agreements", "--disable-interactivity"]

# Name, Id, Version, then optional Available and Source columns.
parser = TabularStatusParser(
    not_found_patterns=(re.compile(re.escape(NOT_FOUND), re.IGNORECASE),),
    column_counts=(3, 4, 5),
    id_columns=(0, 1),
    version_column=2,
    header_patterns=(re.compile(r"^Name\s+Id\s+Version\b", re.IGNORECASE),),
    splitter=WIDE_GAP,
)


class WingetBackend(CliBackend):
    """winget list/install/uninstall with exact id matching."""

    def __init__(self, executable: str = "winget") -> None:
        super().__init__(
            manager=Manager.WINGET,
            executable=executable,
            parser=parser,
            failure_sentinels=(
                "ERROR:",
                "Access is denied",
                "Installer failed with exit code",
                "No package found matching input criteria",
                "Uninstall failed",
            ),
        )

    def probe_command(self, package_id: str) -> list[str]:
        return [self.executable, "list", "--id", package_id, "--exact", *AGREEMENTS]

    def action_command(self, action: Action, package_id: str) -> list[str]:
        if action is Action.INSTALL:
            return [
                self.executable, "install", "--id", package_id, "--exact", "--silent",
                "--accept-package-agreements", *AGREEMENTS,
            ]
        return [self.executable, "uninstall", "--id", package_id, "--exact", "--silent", *AGREEMENTS]
