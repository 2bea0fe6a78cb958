"""
Computation interpreter for the concurrent_state system.

``interpret(context, computation, event)`` wraps a step-producing computation
(a generator function) in a Task and drives it: every yielded value is
classified into an effect descriptor and handled, and the computation is
resumed with the outcome, or re-entered through its error path when the
effect failed.

Only one effect of a computation is ever in flight. Effects that complete
synchronously (state mutators, built-in operators, finished sub-tasks,
settled futures) are queued and drained in a loop instead of recursing, so
long runs of synchronous yields do not grow the Python stack.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from concurrent_state.errors import (
    EffectCancelledError,
    InterpreterInvariantError,
    InvalidYieldableError,
    TaskCancelled,
)
from concurrent_state.operators import Operator, OperatorApi
from concurrent_state.steps import Computation, Done, Yielded
from concurrent_state.task import Task, TaskResolver
from concurrent_state.utils import NO_EVENT
from concurrent_state.yieldables import (
    ApplyMutator,
    AwaitFuture,
    AwaitTask,
    RunOperator,
    SpawnComputation,
    classify,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ExecutionContext(Protocol):
    """The surface a computation's effects operate against.

    ``state`` must return the latest committed value on every access.
    """

    @property
    def state(self) -> Any: ...

    @property
    def dependencies(self) -> Any: ...

    def set_state(self, mutator: Callable[[Any], Any]) -> Any: ...

    def call(self, computation: Callable[..., Any], event: Any = ...) -> Task[Any]: ...


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class _SequenceDriver:
    """Steps one computation on behalf of the task that owns it."""

    def __init__(
        self,
        context: ExecutionContext,
        factory: Callable[..., Any],
        event: Any,
        task: Task[Any],
        resolver: TaskResolver[Any],
    ) -> None:
        self._context = context
        self._factory = factory
        self._event = event
        self._task = task
        self._resolver = resolver
        self._computation: Computation | None = None
        self._pending: deque[tuple[bool, Any]] = deque()
        self._in_flight: Callable[[], None] | None = None
        self._draining = False

    def start(self) -> None:
        self._resolver.on_cancelled(self._cancel_computation)
        self._resolver.on_cancelled(self._cancel_in_flight)
        try:
            self._computation = Computation.start(self._factory, self._event)
        except Exception as exc:
            self._resolver.reject(exc)
            return
        self.send(None)

    def send(self, value: Any = None) -> None:
        self._enqueue(False, value)

    def throw(self, error: BaseException) -> None:
        self._enqueue(True, error)

    def _enqueue(self, is_error: bool, payload: Any) -> None:
        if self._task.is_finished:
            return
        self._pending.append((is_error, payload))
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending and not self._task.is_finished:
                is_error, payload = self._pending.popleft()
                self._step(is_error, payload)
        finally:
            self._draining = False
            if self._task.is_finished:
                self._pending.clear()

    def _step(self, is_error: bool, payload: Any) -> None:
        computation = self._computation
        if computation is None:
            raise InterpreterInvariantError(
                f"{self._task!r} stepped before its computation started"
            )
        try:
            if is_error:
                step = computation.resume_with_error(payload)
            else:
                step = computation.resume(payload)
        except Exception as exc:
            if self._task.is_finished:
                # The task was cancelled from inside this step; nothing can receive the error.
                raise
            self._resolver.reject(exc)
            return

        if self._task.is_cancelled:
            computation.close()
            return

        match step:
            case Done(value=value):
                self._resolver.resolve(value)
            case Yielded(value=value):
                self._interpret(value)

    def _interpret(self, value: Any) -> None:
        try:
            descriptor = classify(value, created_at=self._task.created_at)
        except InvalidYieldableError as exc:
            self._fail(exc)
            return
        logger.debug("%r yielded %r", self._task, descriptor)

        match descriptor:
            case AwaitFuture(future=future):
                self._await_future(future)
            case SpawnComputation(computation=computation):
                self._spawn(computation)
            case ApplyMutator(mutator=mutator):
                self._apply_mutator(mutator)
            case RunOperator(operator=operator):
                self._run_operator(operator)
            case AwaitTask(task=subtask):
                self._await_task(subtask)

    def _fail(self, error: BaseException) -> None:
        self._resolver.reject(error)
        if self._computation is not None:
            self._computation.close()

    def _await_future(self, future: Any) -> None:
        if not callable(getattr(future, "add_done_callback", None)):
            loop = _running_loop()
            if loop is None:
                if inspect.iscoroutine(future):
                    future.close()
                self._throw_needs_loop(future)
                return
            future = asyncio.ensure_future(future, loop=loop)
            # Owned by this task, so it goes down with it.
            self._in_flight = future.cancel
        elif isinstance(future, concurrent.futures.Future):
            # A pending executor future calls back on a worker thread.
            if future.done():
                self._settle_future(future)
                return
            loop = _running_loop()
            if loop is None:
                self._throw_needs_loop(future)
                return
            future = asyncio.wrap_future(future, loop=loop)
        future.add_done_callback(self._settle_future)

    def _throw_needs_loop(self, future: Any) -> None:
        self.throw(
            RuntimeError(f"Awaiting {type(future).__name__} requires a running asyncio event loop")
        )

    def _settle_future(self, future: Any) -> None:
        self._in_flight = None
        if future.cancelled():
            self.throw(EffectCancelledError(future))
            return
        error = future.exception()
        if error is not None:
            self.throw(error)
        else:
            self.send(future.result())

    def _spawn(self, computation: Callable[..., Any]) -> None:
        try:
            subtask = self._context.call(computation)
        except Exception as exc:
            self.throw(exc)
            return
        self._interpret(subtask)

    def _apply_mutator(self, mutator: Callable[[Any], Any]) -> None:
        try:
            new_state = self._context.set_state(mutator)
        except Exception as exc:
            self.throw(exc)
            return
        self.send(new_state)

    def _run_operator(self, operator: Operator) -> None:
        api = OperatorApi(self._context, self._task, self._interpret, self.send)
        try:
            operator.run(api)
        except Exception as exc:
            self.throw(exc)

    def _await_task(self, subtask: Task[Any]) -> None:
        if not subtask.is_finished:
            self._in_flight = subtask.cancel

        def subtask_resolved(result: Any) -> None:
            self._in_flight = None
            self.send(result)

        def subtask_rejected(error: BaseException) -> None:
            self._in_flight = None
            self.throw(error)

        def subtask_cancelled() -> None:
            self._in_flight = None
            self.throw(EffectCancelledError(subtask))

        subtask.run(
            on_resolved=subtask_resolved,
            on_rejected=subtask_rejected,
            on_cancelled=subtask_cancelled,
        )

    def _cancel_computation(self) -> None:
        if self._computation is not None:
            self._computation.cancel(TaskCancelled(self._task))

    def _cancel_in_flight(self) -> None:
        cancel, self._in_flight = self._in_flight, None
        if cancel is not None:
            cancel()


def from_computation(
    context: ExecutionContext,
    computation: Callable[..., Any],
    event: Any = NO_EVENT,
) -> Task[Any]:
    """Build an idle Task that drives ``computation`` once started."""

    if not callable(computation):
        raise TypeError(f"computation must be callable, got {type(computation).__name__}")

    task: Task[Any]

    def run_sequence(resolver: TaskResolver[Any]) -> None:
        _SequenceDriver(context, computation, event, task, resolver).start()

    task = Task(run_sequence, name=getattr(computation, "__name__", None))
    return task


def interpret(
    context: ExecutionContext,
    computation: Callable[..., Any],
    event: Any = NO_EVENT,
) -> Task[Any]:
    """
    Run ``computation`` against ``context`` and return its started Task.

    Example:
        def counter():
            yield lambda state: state.update(count=state["count"] + 1)
            state = yield get_state()
            return state["count"]

        task = interpret(scope, counter)
        assert task.result == 1
    """
    return from_computation(context, computation, event).run()


__all__ = ["ExecutionContext", "from_computation", "interpret"]
