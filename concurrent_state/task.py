"""
Task handle for the concurrent_state system.

A Task is the observable, cancellable handle to one computation's lifecycle.
Producers finish it through a TaskResolver; consumers observe it through
``listen``/``run`` notifications, ``chain`` it into further work, or bridge it
into asyncio with ``to_future``/``await``.

Tasks are idle on construction. ``run`` starts them, and starting is
idempotent: a task that is already running or finished only registers the
supplied listeners.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from concurrent_state.utils import capture_creation_site

T = TypeVar("T")
U = TypeVar("U")

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    """Lifecycle of a task. Exactly one terminal status is ever reached."""

    IDLE = "idle"
    RUNNING = "running"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.RESOLVED, TaskStatus.REJECTED, TaskStatus.CANCELLED)


@dataclass(frozen=True)
class TaskEventNotifications(Generic[T]):
    """Listener bundle; every callback is optional and fires at most once."""

    on_cancelled: Callable[[], None] | None = None
    on_resolved: Callable[[T], None] | None = None
    on_rejected: Callable[[BaseException], None] | None = None
    on_finished: Callable[[], None] | None = None


def _as_notifications(
    notifications: TaskEventNotifications[Any] | None,
    callbacks: dict[str, Callable[..., None]],
) -> TaskEventNotifications[Any] | None:
    if notifications is not None and callbacks:
        raise TypeError("Pass either a TaskEventNotifications or keyword callbacks, not both")
    if notifications is not None:
        if not isinstance(notifications, TaskEventNotifications):
            raise TypeError(
                f"notifications must be TaskEventNotifications, got {type(notifications).__name__}"
            )
        return notifications
    if callbacks:
        return TaskEventNotifications(**callbacks)
    return None


class TaskResolver(Generic[T]):
    """Producer-side capability handed to a task's runner."""

    __slots__ = ("_task",)

    def __init__(self, task: Task[T]) -> None:
        self._task = task

    def resolve(self, result: T = None) -> None:  # type: ignore[assignment]
        self._task._settle(TaskStatus.RESOLVED, result=result)

    def reject(self, error: BaseException) -> None:
        self._task._settle(TaskStatus.REJECTED, error=error)

    def on_cancelled(self, handler: Callable[[], None]) -> None:
        self._task._cancel_callbacks.append(handler)


TaskRunner = Callable[[TaskResolver[T]], None]


class Task(Generic[T]):
    """
    Observable, cancellable handle to one computation.

    Attributes:
        result: the resolved value, set only when the task resolved.
        error: the rejection reason, set only when the task was rejected.
        name: label used in ``repr`` and log records.
        created_at: creation site, captured when CONCURRENT_STATE_DEBUG is set.
    """

    def __init__(self, runner: TaskRunner[T], *, name: str | None = None) -> None:
        if not callable(runner):
            raise TypeError(f"runner must be callable, got {type(runner).__name__}")
        self._runner = runner
        self._status = TaskStatus.IDLE
        self._subscribers: list[TaskEventNotifications[T]] = []
        self._cancel_callbacks: list[Callable[[], None]] = []
        self.result: T | None = None
        self.error: BaseException | None = None
        self.name = name or getattr(runner, "__name__", None)
        self.created_at = capture_creation_site()

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def is_idle(self) -> bool:
        return self._status is TaskStatus.IDLE

    @property
    def is_running(self) -> bool:
        return self._status is TaskStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        return self._status.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self._status is TaskStatus.CANCELLED

    @property
    def is_resolved(self) -> bool:
        return self._status is TaskStatus.RESOLVED

    @property
    def is_rejected(self) -> bool:
        return self._status is TaskStatus.REJECTED

    def run(
        self,
        notifications: TaskEventNotifications[T] | None = None,
        /,
        **callbacks: Callable[..., None],
    ) -> Task[T]:
        """Register listeners, then start the runner unless already started."""

        events = _as_notifications(notifications, callbacks)
        if events is not None:
            self.listen(events)
        if self._status is not TaskStatus.IDLE:
            return self

        self._status = TaskStatus.RUNNING
        logger.debug("task started: %r", self)
        resolver = TaskResolver(self)
        try:
            self._runner(resolver)
        except Exception as exc:
            # Errors raised by listeners after the task settled belong to the caller.
            if self.is_finished:
                raise
            resolver.reject(exc)
        return self

    def listen(
        self,
        notifications: TaskEventNotifications[T] | None = None,
        /,
        **callbacks: Callable[..., None],
    ) -> None:
        """Subscribe to the terminal transition; fires immediately if already finished."""

        events = _as_notifications(notifications, callbacks)
        if events is None:
            raise TypeError("listen() requires notifications or keyword callbacks")
        if self.is_finished:
            self._notify(events)
        else:
            self._subscribers.append(events)

    def cancel(self) -> None:
        """
        Cancel the task. No-op once finished.

        Cancellation hooks run in registration order, then subscribers are
        notified. Every hook and subscriber runs even if an earlier one raised;
        the first error is re-raised afterwards.
        """

        if self.is_finished:
            return
        self._status = TaskStatus.CANCELLED
        logger.debug("task cancelled: %r", self)

        hooks, self._cancel_callbacks = self._cancel_callbacks, []
        errors: list[BaseException] = []
        for hook in hooks:
            try:
                hook()
            except BaseException as exc:
                errors.append(exc)
        errors.extend(self._notify_all())
        self._raise_first(errors)

    def chain(self, lift: Callable[[T | None], Task[U]]) -> Task[U]:
        """
        Return an idle task that runs this task, then the task built by ``lift``.

        Cancelling the chain cancels whichever link is live. A rejected base
        rejects the chain without calling ``lift``. A cancelled base cancels
        ``lift(None)`` and the chain.
        """

        base = self
        chained: Task[U]

        def run_chain(resolver: TaskResolver[U]) -> None:
            live: list[Task[Any]] = [base]

            def cancel_live_links() -> None:
                for link in list(live):
                    link.cancel()

            def continue_with(result: T) -> None:
                try:
                    next_task = lift(result)
                except Exception as exc:
                    resolver.reject(exc)
                    return
                live.append(next_task)
                next_task.run(
                    on_resolved=resolver.resolve,
                    on_rejected=resolver.reject,
                    on_cancelled=chained.cancel,
                )

            def abandon() -> None:
                try:
                    lift(None).cancel()
                finally:
                    chained.cancel()

            resolver.on_cancelled(cancel_live_links)
            base.run(
                on_resolved=continue_with,
                on_rejected=resolver.reject,
                on_cancelled=abandon,
            )

        chained = Task(run_chain, name=f"{self.name}.chain" if self.name else "chain")
        return chained

    def to_future(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Future[T]:
        """
        Bridge the terminal outcome into an asyncio future.

        Resolution sets the result, rejection sets the exception, cancellation
        cancels the future (awaiting it raises ``asyncio.CancelledError``).
        The task is not started.
        """

        if loop is None:
            loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        def set_result(result: T) -> None:
            if not future.done():
                future.set_result(result)

        def set_exception(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        def cancel_future() -> None:
            if not future.done():
                future.cancel()

        self.listen(
            on_resolved=set_result,
            on_rejected=set_exception,
            on_cancelled=cancel_future,
        )
        return future

    def __await__(self) -> Generator[Any, None, T]:
        self.run()
        return self.to_future().__await__()

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        site = f" created at {self.created_at}" if self.created_at else ""
        return f"<Task{label} {self._status.value}{site}>"

    def _settle(
        self,
        status: TaskStatus,
        *,
        result: T | None = None,
        error: BaseException | None = None,
    ) -> None:
        if self._status is not TaskStatus.RUNNING:
            logger.debug("ignoring %s on %r", status.value, self)
            return
        self._status = status
        if status is TaskStatus.RESOLVED:
            self.result = result
        else:
            self.error = error
        self._cancel_callbacks = []
        logger.debug("task %s: %r", status.value, self)
        self._raise_first(self._notify_all())

    def _notify_all(self) -> list[BaseException]:
        subscribers, self._subscribers = self._subscribers, []
        errors: list[BaseException] = []
        for events in subscribers:
            try:
                self._notify(events)
            except BaseException as exc:
                errors.append(exc)
        return errors

    def _raise_first(self, errors: list[BaseException]) -> None:
        if not errors:
            return
        for extra in errors[1:]:
            logger.warning("additional error while finishing %r: %r", self, extra)
        raise errors[0]

    def _notify(self, events: TaskEventNotifications[T]) -> None:
        if self._status is TaskStatus.CANCELLED:
            if events.on_cancelled is not None:
                events.on_cancelled()
        elif self._status is TaskStatus.REJECTED:
            if events.on_rejected is not None:
                events.on_rejected(self.error)  # type: ignore[arg-type]
        elif self._status is TaskStatus.RESOLVED:
            if events.on_resolved is not None:
                events.on_resolved(self.result)  # type: ignore[arg-type]
        if events.on_finished is not None:
            events.on_finished()


def _never_runs(resolver: TaskResolver[Any]) -> None:
    pass


def idle_task() -> Task[Any]:
    """Return a placeholder task whose runner does nothing."""

    return Task(_never_runs, name="idle")


def is_task(candidate: object) -> bool:
    return isinstance(candidate, Task)


__all__ = [
    "Task",
    "TaskEventNotifications",
    "TaskResolver",
    "TaskRunner",
    "TaskStatus",
    "idle_task",
    "is_task",
]
