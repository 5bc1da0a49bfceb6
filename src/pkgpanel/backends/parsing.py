"""Parsers for the tabular text printed by package manager list commands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pkgpanel.core.errors import OutputParseError
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import InstallStatus, normalise_id

log = get_logger(__name__)

WIDE_GAP = re.compile(r"\s{2,}")
ANY_GAP = re.compile(r"\s+")


def clean_lines(output: str) -> list[str]:
    """Split output into lines, dropping progress-spinner redraws.

    Tools that animate a spinner rewrite the line with carriage returns;
    only the text after the last one is what ends up on screen.
    """
    lines = []
    for raw in output.split("\n"):
        line = raw.rstrip("\r").rsplit("\r", 1)[-1].strip()
        if line:
            lines.append(line)
    return lines


def is_separator(line: str) -> bool:
    return set(line) <= {"-", " ", "—", "─"}


@dataclass(frozen=True)
class ParseResult:
    """Parsed probe output.

    ``conclusive`` is set when the output named the package: either the
    not-found sentinel or a row with a matching id. Tables that merely
    lack the package are inconclusive when the command also failed.
    """

    status: InstallStatus
    conclusive: bool


@dataclass
class TabularStatusParser:
    """Parse a "list installed" table into an InstallStatus.

    Attributes:
        not_found_patterns: Patterns meaning the package is not installed.
        column_counts: Accepted number of columns per row; other rows are
            skipped.
        id_columns: Columns that may hold the package identifier.
        version_column: Column holding the installed version.
        header_patterns: Lines matching any of these are treated as headers.
        splitter: Regex separating columns.
    """

    not_found_patterns: tuple[re.Pattern[str], ...]
    column_counts: tuple[int, ...]
    id_columns: tuple[int, ...]
    version_column: int
    header_patterns: tuple[re.Pattern[str], ...] = field(default_factory=tuple)
    splitter: re.Pattern[str] = WIDE_GAP

    def parse(self, package_id: str, output: str) -> InstallStatus:
        return self.scan(package_id, output).status

    def scan(self, package_id: str, output: str) -> ParseResult:
        """Parse output for one package.

        Args:
            package_id: Identifier that was probed.
            output: Combined command output.

        Returns:
            ParseResult holding the InstallStatus for the package.

        Raises:
            OutputParseError: If the output holds neither the not-found
                sentinel nor anything that looks like a table row.
        """
        if any(p.search(output) for p in self.not_found_patterns):
            return ParseResult(InstallStatus.not_installed(), conclusive=True)

        wanted = normalise_id(package_id)
        saw_table = False

        for line in clean_lines(output):
            if is_separator(line) or self._is_header(line):
                saw_table = True
                continue

            columns = self.splitter.split(line)
            if len(columns) not in self.column_counts:
                continue
            saw_table = True

            if any(normalise_id(columns[i]) == wanted for i in self.id_columns):
                version = columns[self.version_column].strip() or None
                return ParseResult(InstallStatus(installed=True, version=version), conclusive=True)

        if not saw_table:
            log.warning("probe_output_unrecognised", package=package_id, output_preview=output[:200])
            raise OutputParseError(package=package_id, output=output)

        return ParseResult(InstallStatus.not_installed(), conclusive=False)

    def _is_header(self, line: str) -> bool:
        return any(p.search(line) for p in self.header_patterns)
