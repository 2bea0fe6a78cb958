"""
TaskScope - a framework-neutral owner for state, dependencies and tasks.

A TaskScope is the concrete execution context computations run against. It
keeps the state with copy-on-write updates, applies each computation's
strategy when the same computation is invoked again while active, and cancels
everything it started when it is closed.

Example:
    with TaskScope({"results": []}, dependencies={"api": api}) as scope:
        @use_strategy("switch")
        def search(query):
            api = yield get_dependencies()
            results = yield api["api"].search(query)
            yield lambda state: state.update(results=results)

        scope.call(search, "py")
        scope.call(search, "python")  # cancels the first search
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

from loguru import logger as loguru_logger

from concurrent_state.errors import ScopeClosedError
from concurrent_state.interpreter import from_computation
from concurrent_state.strategies import strategy_of
from concurrent_state.task import Task, idle_task
from concurrent_state.utils import NO_EVENT

logger = loguru_logger.bind(component="task_scope")

ComputationFn = Callable[..., Any]


class TaskScope:
    def __init__(self, initial_state: Any = None, dependencies: Any = None) -> None:
        self._state = initial_state
        self._dependencies = {} if dependencies is None else dependencies
        self._tasks: list[Task[Any]] = []
        self._active: dict[ComputationFn, Task[Any]] = {}
        self._latest: dict[ComputationFn, Task[Any]] = {}
        self._watchers: dict[ComputationFn, list[Callable[[Task[Any]], None]]] = {}
        self._state_listeners: list[Callable[[Any], None]] = []
        self._closed = False

    @property
    def state(self) -> Any:
        return self._state

    @property
    def dependencies(self) -> Any:
        return self._dependencies

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def running_tasks(self) -> tuple[Task[Any], ...]:
        return tuple(self._tasks)

    def set_state(self, mutator: Callable[[Any], Any]) -> Any:
        """
        Apply ``mutator`` to a private copy of the state and commit the result.

        A mutator may edit the draft in place (return ``None``) or return a
        replacement state. Returns whatever the mutator returned.
        """

        draft = copy.deepcopy(self._state)
        returned = mutator(draft)
        self._state = draft if returned is None else returned
        for listener in list(self._state_listeners):
            listener(self._state)
        return returned

    def subscribe(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Call ``listener`` with the new state after every commit."""

        self._state_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return unsubscribe

    def call(self, computation: ComputationFn, event: Any = NO_EVENT) -> Task[Any]:
        """
        Start ``computation`` in this scope and return its (composed) task.

        If the strategy cancels a previous task whose cleanup raises, the new
        task is still started and recorded, then the cleanup error is raised.
        """

        if self._closed:
            raise ScopeClosedError(
                f"Cannot call {getattr(computation, '__name__', computation)!r}: scope is closed"
            )

        task = from_computation(self, computation, event)
        self._track(task)

        cleanup_error: Exception | None = None
        strategy = strategy_of(computation)
        if strategy is not None:
            previous = self._active.get(computation)
            if previous is not None:
                try:
                    task = strategy.compose(previous, task)
                except Exception as exc:
                    # The previous task is already cancelled; carry on with the new one.
                    logger.opt(exception=exc).warning("cleanup of {} failed", previous)
                    cleanup_error = exc
                else:
                    self._track(task)
                    logger.debug("composed {} with {} using {}", previous, task, strategy)
            self._activate(computation, task)

        self._latest[computation] = task
        task.run()
        for handler in list(self._watchers.get(computation, ())):
            handler(task)
        if cleanup_error is not None:
            raise cleanup_error
        return task

    def task_state(self, computation: ComputationFn) -> Task[Any]:
        """The most recent task for ``computation``, or an idle task."""

        return self._latest.get(computation) or idle_task()

    def watch(
        self, computation: ComputationFn, handler: Callable[[Task[Any]], None]
    ) -> Callable[[], None]:
        """Call ``handler`` with the task each time ``computation`` is called."""

        handlers = self._watchers.setdefault(computation, [])
        handlers.append(handler)

        def unwatch() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unwatch

    def close(self) -> None:
        """Cancel every unfinished task started here. Further calls are rejected."""

        if self._closed:
            return
        self._closed = True
        pending = list(self._tasks)
        if pending:
            logger.info("closing scope, cancelling {} task(s)", len(pending))

        errors: list[BaseException] = []
        for task in pending:
            try:
                task.cancel()
            except Exception as exc:
                logger.opt(exception=exc).warning("cleanup of {} failed", task)
                errors.append(exc)
        self._state_listeners.clear()
        self._watchers.clear()
        if errors:
            raise errors[0]

    def __enter__(self) -> TaskScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _track(self, task: Task[Any]) -> None:
        if any(tracked is task for tracked in self._tasks):
            return
        self._tasks.append(task)

        def forget() -> None:
            self._tasks = [tracked for tracked in self._tasks if tracked is not task]

        task.listen(on_finished=forget)

    def _activate(self, computation: ComputationFn, task: Task[Any]) -> None:
        self._active[computation] = task

        def release() -> None:
            if self._active.get(computation) is task:
                del self._active[computation]

        task.listen(on_finished=release)


__all__ = ["TaskScope"]
