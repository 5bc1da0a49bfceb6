"""Asynchronous execution of package manager commands."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Optional, Protocol

from pkgpanel.core.errors import ManagerNotAvailableError, ManagerTimeoutError
from pkgpanel.core.logging import get_logger

log = get_logger(__name__)

ENV_OVERRIDES = {
    "NO_COLOR": "1",
}


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as the package managers mix them."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Callable that runs a command and captures its output."""

    def __call__(self, *cmd: str, timeout: Optional[float] = None) -> Awaitable[CommandResult]:
        ...


def _decode(data: bytes) -> str:
    return data.decode(errors="replace").strip()


async def run_capture(*cmd: str, timeout: Optional[float] = 30) -> CommandResult:
    """Run a command asynchronously with an optional timeout.

    The child process is killed when the timeout expires and also when
    the awaiting task is cancelled, so a stopped operation does not keep
    its installer running in the background.

    Args:
        *cmd: Command and its arguments to run.
        timeout: Timeout in seconds, None to wait forever.

    Returns:
        The captured CommandResult.

    Raises:
        ManagerNotAvailableError: If the executable cannot be started.
        ManagerTimeoutError: If the command times out.
    """
    command = " ".join(cmd)
    start = time.perf_counter()
    log.debug("command_start", command=command, timeout=timeout)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            env={**os.environ, **ENV_OVERRIDES},
        )
    except OSError as e:
        log.error("command_not_available", command=command, error=str(e))
        raise ManagerNotAvailableError(command=command, context={"error": str(e)}) from e

    try:
        out, err = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log.error(
            "command_timeout",
            command=command,
            timeout=timeout,
            duration_ms=duration_ms
        )
        _kill(process)
        await process.wait()
        raise ManagerTimeoutError(
            command=command,
            timeout=timeout,
            context={"duration_ms": duration_ms}
        ) from e
    except asyncio.CancelledError:
        log.warning("command_cancelled", command=command, pid=process.pid)
        _kill(process)
        raise

    duration_ms = int((time.perf_counter() - start) * 1000)
    log.info(
        "command_complete",
        command=command,
        returncode=process.returncode,
        duration_ms=duration_ms
    )

    return CommandResult(_decode(out), _decode(err), process.returncode)


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass
