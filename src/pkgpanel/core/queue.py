"""Operation queue serialising install/uninstall runs.

At most one operation per (manager, package) is tracked at any time and a
single worker runs them one by one in FIFO order. Failed runs go back to
the queue after an exponential backoff until the retry budget is spent.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from pkgpanel.core.cache import StatusCache
from pkgpanel.core.config import Settings
from pkgpanel.core.errors import (
    DuplicateOperationError,
    OperationCancelledError,
    RetryExhaustedError,
    TransientError,
)
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import Action, Manager, OperationState, normalise_id

log = get_logger(__name__)

Job = Callable[[], Awaitable[Any]]
TransitionCallback = Callable[["QueuedOperation"], None]


def backoff_delay(
    retry_count: int,
    initial: float,
    maximum: float,
    multiplier: float = 2.0,
) -> float:
    """Delay before the retry following ``retry_count`` earlier retries."""
    return min(initial * multiplier ** retry_count, maximum)


@dataclass(eq=False)
class QueuedOperation:
    """One tracked install/uninstall request."""

    manager: Manager
    package_id: str
    action: Action
    job: Job
    future: asyncio.Future
    retry_count: int = 0
    next_backoff: float = 0.0
    state: OperationState = OperationState.PENDING
    stopped: bool = False
    last_error: BaseException | None = field(default=None, repr=False)
    task: asyncio.Task | None = field(default=None, repr=False)
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def key(self) -> tuple[Manager, str]:
        return (self.manager, normalise_id(self.package_id))


class OperationHandle:
    """Caller's view of a queued operation."""

    def __init__(self, op: QueuedOperation) -> None:
        self._op = op

    @property
    def manager(self) -> Manager:
        return self._op.manager

    @property
    def package_id(self) -> str:
        return self._op.package_id

    @property
    def action(self) -> Action:
        return self._op.action

    @property
    def state(self) -> OperationState:
        return self._op.state

    @property
    def retry_count(self) -> int:
        return self._op.retry_count

    def done(self) -> bool:
        return self._op.future.done()

    async def result(self) -> Any:
        """Wait for the operation to settle.

        Raises:
            OperationCancelledError: If the operation was stopped.
            RetryExhaustedError: If it kept failing.
        """
        return await asyncio.shield(self._op.future)

    def __await__(self):
        return self.result().__await__()

    def __repr__(self) -> str:
        return (
            f"OperationHandle({self.manager.value}:{self.package_id} "
            f"{self.action.value} {self.state.value})"
        )


class OperationQueue:
    """Admission control, FIFO dispatch, retries and cancellation."""

    def __init__(self, settings: Settings, cache: StatusCache | None = None) -> None:
        self.settings = settings
        self.cache = cache
        self._active: dict[tuple[Manager, str], QueuedOperation] = {}
        self._pending: deque[QueuedOperation] = deque()
        self._wakeup = asyncio.Event()
        self._worker: asyncio.Task | None = None
        self._listeners: list[TransitionCallback] = []

    async def __aenter__(self) -> OperationQueue:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __len__(self) -> int:
        return len(self._active)

    def start(self) -> None:
        """Start the worker on the running event loop."""
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run_worker(), name="pkgpanel-operation-queue")
        log.debug("queue_started")

    async def aclose(self) -> None:
        """Stop the worker and abandon every tracked operation."""
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        tasks = []
        for op in list(self._active.values()):
            if op.timer is not None:
                op.timer.cancel()
            if op.task is not None and not op.task.done():
                op.task.cancel()
                tasks.append(op.task)
            if not op.future.done():
                op.future.cancel()
        self._active.clear()
        self._pending.clear()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.debug("queue_closed")

    def subscribe(self, callback: TransitionCallback) -> Callable[[], None]:
        """Call ``callback`` on every state change.

        Returns:
            A function removing the subscription.
        """
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    def is_in_progress(self, manager: Manager, package_id: str) -> bool:
        return (manager, normalise_id(package_id)) in self._active

    def get(self, manager: Manager, package_id: str) -> OperationHandle | None:
        op = self._active.get((manager, normalise_id(package_id)))
        return None if op is None else OperationHandle(op)

    def snapshot(self) -> list[OperationHandle]:
        return [OperationHandle(op) for op in self._active.values()]

    def enqueue(
        self, manager: Manager, package_id: str, action: Action, job: Job
    ) -> OperationHandle:
        """Track a new operation and queue it for the worker.

        Args:
            manager: Package manager the operation targets.
            package_id: Package identifier.
            action: Install or uninstall.
            job: Coroutine function running the operation once.

        Returns:
            An OperationHandle to await.

        Raises:
            DuplicateOperationError: If an operation for this package is
                already pending or running.
        """
        key = (manager, normalise_id(package_id))
        if key in self._active:
            log.warning(
                "operation_rejected_duplicate",
                manager=manager.value,
                package=package_id,
                action=action.value
            )
            raise DuplicateOperationError(manager.value, package_id)

        self.start()
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume)
        op = QueuedOperation(manager, package_id, action, job, future)

        self._active[key] = op
        self._pending.append(op)
        log.info(
            "operation_enqueued",
            manager=manager.value,
            package=package_id,
            action=action.value,
            queued=len(self._pending)
        )
        self._notify(op)
        self._wake()
        return OperationHandle(op)

    def stop(self, manager: Manager, package_id: str) -> bool:
        """Cancel a pending or running operation.

        The admission slot is freed at once. A running command is
        cancelled, which kills its process; an installer that already
        applied its change before the kill is not rolled back.

        Returns:
            True if an operation was stopped.
        """
        op = self._active.pop((manager, normalise_id(package_id)), None)
        if op is None:
            return False

        was_running = op.state is OperationState.RUNNING
        op.stopped = True
        if op.timer is not None:
            op.timer.cancel()
            op.timer = None
        if op in self._pending:
            self._pending.remove(op)
        if op.task is not None and not op.task.done():
            op.task.cancel()

        op.state = OperationState.STOPPED
        if not op.future.done():
            op.future.set_exception(OperationCancelledError(manager.value, op.package_id))

        log.info(
            "operation_stopped",
            manager=manager.value,
            package=op.package_id,
            action=op.action.value,
            was_running=was_running
        )
        self._notify(op)
        return True

    def _wake(self) -> None:
        self._wakeup.set()

    def _notify(self, op: QueuedOperation) -> None:
        for callback in list(self._listeners):
            try:
                callback(op)
            except Exception:
                log.error("queue_listener_error", package=op.package_id, exc_info=True)

    async def _run_worker(self) -> None:
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            op = self._pending.popleft()
            if op.stopped:
                continue

            await self._dispatch(op)
            if self.settings.tick_interval > 0:
                await asyncio.sleep(self.settings.tick_interval)

    async def _dispatch(self, op: QueuedOperation) -> None:
        op.state = OperationState.RUNNING
        log.info(
            "operation_running",
            manager=op.manager.value,
            package=op.package_id,
            action=op.action.value,
            attempt=op.retry_count + 1
        )
        self._notify(op)

        op.task = asyncio.create_task(op.job())
        try:
            await asyncio.wait({op.task})
        except asyncio.CancelledError:
            op.task.cancel()
            raise

        task, op.task = op.task, None
        error = None if task.cancelled() else task.exception()

        if op.stopped:
            return

        if task.cancelled():
            error = OperationCancelledError(op.manager.value, op.package_id)

        if error is None:
            self._settle(op, OperationState.SUCCEEDED, result=task.result())
            return

        op.last_error = error
        if isinstance(error, TransientError) and op.retry_count < self.settings.max_retries:
            self._schedule_retry(op, error)
        elif isinstance(error, TransientError):
            self._settle(
                op,
                OperationState.FAILED,
                error=RetryExhaustedError(
                    op.manager.value, op.package_id, op.retry_count + 1, error
                ),
            )
        else:
            self._settle(op, OperationState.FAILED, error=error)

    def _schedule_retry(self, op: QueuedOperation, error: BaseException) -> None:
        delay = backoff_delay(
            op.retry_count,
            self.settings.initial_backoff,
            self.settings.max_backoff,
            self.settings.backoff_multiplier,
        )
        op.retry_count += 1
        op.next_backoff = delay
        op.state = OperationState.PENDING
        op.timer = asyncio.get_running_loop().call_later(delay, self._requeue, op)

        log.warning(
            "operation_retry_scheduled",
            manager=op.manager.value,
            package=op.package_id,
            action=op.action.value,
            retry=op.retry_count,
            max_retries=self.settings.max_retries,
            delay_seconds=delay,
            error=str(error)
        )
        self._notify(op)

    def _requeue(self, op: QueuedOperation) -> None:
        op.timer = None
        if op.stopped:
            return
        self._pending.append(op)
        self._wake()

    def _settle(
        self,
        op: QueuedOperation,
        state: OperationState,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        self._active.pop(op.key, None)
        op.state = state

        if not op.future.done():
            if error is None:
                op.future.set_result(result)
            else:
                op.future.set_exception(error)

        if self.cache is not None:
            self.cache.invalidate(op.manager)

        if error is None:
            log.info(
                "operation_succeeded",
                manager=op.manager.value,
                package=op.package_id,
                action=op.action.value,
                retries=op.retry_count
            )
        else:
            log.error(
                "operation_failed_terminal",
                manager=op.manager.value,
                package=op.package_id,
                action=op.action.value,
                retries=op.retry_count,
                error=str(error)
            )
        self._notify(op)


def _consume(future: asyncio.Future) -> None:
    # Handles may be dropped without being awaited.
    if not future.cancelled():
        future.exception()
