"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from pathlib import Path
from typing import Any

import pytest

from pkgpanel.core.config import Settings
from pkgpanel.core.shell import CommandResult

WINGET_HEADER = (
    "Name                Id            Version  Source\n"
    "------------------------------------------------\n"
)
WINGET_NOT_FOUND = "No installed package found matching input criteria."
CHOCO_NOT_FOUND = "Chocolatey v2.2.2\n0 packages installed.\n"


def winget_row(package_id: str, version: str, name: str = "Some App") -> CommandResult:
    return CommandResult(f"{WINGET_HEADER}{name}      {package_id}      {version}  winget", "", 0)


def winget_missing() -> CommandResult:
    # winget exits nonzero when nothing matches
    return CommandResult(WINGET_NOT_FOUND, "", -1978335212)


def ok(output: str = "") -> CommandResult:
    return CommandResult(output, "", 0)


class FakeRunner:
    """Stand-in for run_capture that replays scripted results.

    Responses are keyed by (verb, package) where verb is the subcommand
    ("list", "install", "uninstall", "--version"); PowerShell bootstrap
    scripts are keyed as ("powershell", None). Each response is a
    CommandResult, an exception to raise, or a coroutine function to
    await. The last response for a key repeats.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.responses: dict[tuple[str, str | None], list[Any]] = defaultdict(list)
        self.default: Any = ok()

    def add(self, verb: str, package_id: str | None, *responses: Any) -> FakeRunner:
        self.responses[(verb, package_id)].extend(responses)
        return self

    @staticmethod
    def key(cmd: tuple[str, ...]) -> tuple[str, str | None]:
        if cmd[0] == "powershell":
            return "powershell", None
        verb = cmd[1]
        package = next((arg for arg in cmd[2:] if not arg.startswith("-")), None)
        return verb, package

    def count(self, verb: str, package_id: str | None = None) -> int:
        return sum(1 for c in self.calls if self.key(c) == (verb, package_id))

    async def __call__(self, *cmd: str, timeout: float | None = None) -> CommandResult:
        self.calls.append(cmd)
        queue = self.responses.get(self.key(cmd))
        if queue:
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        else:
            response = self.default

        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return await response()
        return response


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every delay shrunk so tests run fast."""
    return Settings(
        data_dir=tmp_path / "pkgpanel",
        batch_delay=0.0,
        bulk_timeout=5.0,
        command_timeout=5.0,
        operation_timeout=5.0,
        initial_backoff=0.01,
        max_backoff=0.04,
        max_retries=3,
        tick_interval=0.0,
        max_verify_retries=5,
        verify_delay=0.0,
    )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until ``predicate`` is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
