"""Exceptions for pkgpanel and the retry helper built on them."""

from __future__ import annotations

import asyncio
import functools
import time
from typing import Any, Callable, Self, TypeVar

from pkgpanel.core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Exit Codes
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1
EXIT_SYSTEM_ERROR = 2
EXIT_TRANSIENT_ERROR = 3
EXIT_UNVERIFIED = 4


class PanelError(Exception):
    """Base exception class with context propagation.

    All pkgpanel exceptions inherit from this class. Context is a
    dictionary that accumulates relevant information as the exception
    propagates up the call stack.

    Example:
        raise PanelError("An error occurred", context={"package": "foo"})

        # Or with context propagation
        try:
            ...
        except PanelError as e:
            raise e.with_context(manager="winget", action="install")
    """
    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def with_context(self, **new_context: Any) -> Self:
        """Merge additional context into the exception and return it.

        Args:
            **new_context: Additional context to add to the exception.

        Returns:
            The same exception instance with merged context.
        """
        self.context.update(new_context)
        return self

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class TransientError(PanelError):
    """Errors that may succeed when retried.

    Typically caused by a package manager being busy, a flaky download
    or a command timing out.
    """


class UserError(PanelError):
    """Errors caused by user actions or inputs.

    These should not be retried without correction.
    """


class SystemError(PanelError):
    """Errors due to problems with the local environment.

    Missing executables, unreadable files and similar conditions that
    need user or system intervention.
    """


## Specific Exceptions ##

class ManagerCommandError(TransientError):
    """A package manager command failed.

    Raised for nonzero exit codes and for output containing a known
    failure sentinel such as "ERROR:" or an access-denied phrase.
    """
    def __init__(
        self,
        message: str | None = None,
        command: str | None = None,
        returncode: int | None = None,
        error: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if command:
            ctx["command"] = command
        if returncode is not None:
            ctx["returncode"] = returncode
        if error:
            ctx["error"] = error

        if message is None:
            message = f"Command failed with exit code {returncode if returncode is not None else 'unknown'}"

        super().__init__(message, context=ctx)


class ManagerTimeoutError(TransientError):
    """A package manager command exceeded its timeout."""
    def __init__(
        self,
        message: str | None = None,
        command: str | None = None,
        timeout: float | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if command:
            ctx["command"] = command
        if timeout is not None:
            ctx["timeout"] = timeout

        if message is None:
            message = f"Command timed out after {timeout or 'unknown'}s"

        super().__init__(message, context=ctx)


class ManagerNotAvailableError(SystemError):
    """The package manager executable could not be started."""
    def __init__(
        self,
        message: str | None = None,
        command: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if command:
            ctx["command"] = command

        if message is None:
            message = "Package manager executable not found"

        super().__init__(message, context=ctx)


class OutputParseError(TransientError):
    """Command output did not look like any known format."""
    def __init__(
        self,
        message: str | None = None,
        package: str | None = None,
        output: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if package:
            ctx["package"] = package
        if output is not None:
            ctx["output_preview"] = output[:200]

        if message is None:
            message = "Unrecognised package manager output"

        super().__init__(message, context=ctx)


class UnknownManagerError(UserError):
    """The requested package manager is not supported."""
    def __init__(self, manager: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        super().__init__(f"Unknown package manager '{manager}'", context=ctx)


class BootstrapNotSupportedError(UserError):
    """The package manager itself cannot be installed or removed here."""
    def __init__(self, manager: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        super().__init__(f"{manager} cannot be installed or removed by pkgpanel", context=ctx)


class DuplicateOperationError(UserError):
    """An operation for this package is already pending or running.

    Admission control rejects the new request immediately; it is never
    queued behind the existing one.
    """
    def __init__(
        self,
        manager: str,
        package: str,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        ctx["package"] = package
        super().__init__(f"Operation already in progress for '{package}'", context=ctx)


class OperationCancelledError(UserError):
    """The operation was stopped by the user."""
    def __init__(
        self,
        manager: str,
        package: str,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        ctx["package"] = package
        super().__init__(f"Operation for '{package}' stopped by user", context=ctx)


class RetryExhaustedError(TransientError):
    """The operation kept failing until the retry budget ran out."""
    def __init__(
        self,
        manager: str,
        package: str,
        attempts: int,
        last_error: BaseException,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        ctx["package"] = package
        ctx["attempts"] = attempts
        ctx["error"] = str(last_error)
        self.last_error = last_error
        super().__init__(
            f"Operation for '{package}' failed after {attempts} attempts",
            context=ctx,
        )


class CatalogError(SystemError):
    """The package catalog could not be read or written."""
    def __init__(
        self,
        message: str | None = None,
        path: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        if operation:
            ctx["operation"] = operation

        if message is None:
            message = f"Catalog {operation} operation failed" if operation else "Catalog operation failed"

        super().__init__(message, context=ctx)


class CatalogEntryNotFoundError(UserError):
    """The catalog has no entry with this app id."""
    def __init__(self, manager: str, package: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        ctx["package"] = package
        super().__init__(f"Package '{package}' is not in the {manager} catalog", context=ctx)


class CatalogEntryExistsError(UserError):
    """The catalog already has an entry with this app id."""
    def __init__(self, manager: str, package: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["manager"] = manager
        ctx["package"] = package
        super().__init__(f"Package '{package}' is already in the {manager} catalog", context=ctx)


def retry_on_transient(
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff: float = 2.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry functions on transient errors with exponential backoff.

    Args:
        max_retries: Maximum number of attempts before giving up.
        base_delay: Initial delay between attempts in seconds.
        backoff: Multiplier for delay to implement exponential backoff.

    Returns:
        A decorator that applies the retry logic to the decorated function.

    Example:
        @retry_on_transient(max_retries=5, base_delay=2.0)
        async def fetch_version():
            ...

    Note:
        - Only retries on TransientError exceptions.
        - Works with sync and async functions.
        - Delays: 1s, 2s, 4s with default settings.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except TransientError as e:
                    if attempt == max_retries:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=max_retries,
                            error=str(e),
                            context=e.context
                        )
                        raise

                    delay = base_delay * (backoff ** (attempt - 1))
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                        context=e.context
                    )
                    await asyncio.sleep(delay)

            raise AssertionError("unreachable")

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except TransientError as e:
                    if attempt == max_retries:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=max_retries,
                            error=str(e),
                            context=e.context
                        )
                        raise

                    delay = base_delay * (backoff ** (attempt - 1))
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                        context=e.context
                    )
                    time.sleep(delay)

            raise AssertionError("unreachable")

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator


# CLI Error Message Templates

ERROR_TEMPLATES = {
    DuplicateOperationError: (
        "❌ An operation for {package} is already in progress\n"
        "   Wait for it to finish or stop it from the control panel"
    ),
    OperationCancelledError: (
        "⏹ Operation for {package} was stopped"
    ),
    RetryExhaustedError: (
        "⚠️ Giving up on {package} after {attempts} attempts\n"
        "   Last error: {error}"
    ),
    ManagerTimeoutError: (
        "⚠️ Command timed out after {timeout}s: {command}"
    ),
    ManagerCommandError: (
        "⚠️ Package manager command failed: {command}\n"
        "   Exit Code: {returncode}\n"
        "   Error: {error}"
    ),
    ManagerNotAvailableError: (
        "⚠️ Could not run {command}\n"
        "   Make sure the package manager is installed and on PATH"
    ),
    CatalogError: (
        "⚠️ Catalog error: {message}\n"
        "   Location: {path}"
    ),
    TransientError: (
        "⚠️ Temporary failure: {message}\n"
        "   This may resolve itself - try again in a moment"
    ),
    UserError: (
        "❌ {message}"
    ),
    SystemError: (
        "⚠️ System error: {message}\n"
        "   Please check your system configuration and try again"
    ),
    PanelError: (
        "❌ {message}"
    ),
}


def format_error_message(error: PanelError) -> str:
    """Format an error for CLI display based on its type.

    Falls back to the closest base class template, and to the bare
    message when the template needs context the error does not carry.

    Args:
        error: The PanelError instance to format.

    Returns:
        A formatted string message for CLI display.
    """
    template = ERROR_TEMPLATES[PanelError]
    for cls in type(error).__mro__:
        if cls in ERROR_TEMPLATES:
            template = ERROR_TEMPLATES[cls]
            break

    try:
        return template.format(**{**error.context, "message": error.message})
    except KeyError:
        return f"❌ {error.message}"
