"""
Operators: pluggable effect kinds.

An Operator is yielded from a computation like any other effect descriptor.
The interpreter hands it an OperatorApi and the Operator decides how control
returns to the computation: ``api.next(value)`` resumes immediately,
``api.interpret(descriptor)`` hands a new descriptor back to the interpreter.
Exactly one of them should be called per ``run``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from concurrent_state.utils import NO_EVENT

if TYPE_CHECKING:
    from concurrent_state.interpreter import ExecutionContext
    from concurrent_state.task import Task


class Operator(ABC):
    """Base class for custom effects."""

    @abstractmethod
    def run(self, api: OperatorApi) -> None:
        """Perform the effect and hand control back through ``api``."""


class OperatorApi:
    """
    The execution surface an Operator runs against.

    ``state`` and ``dependencies`` are read from the execution context on each
    access, so an Operator never sees a snapshot older than the last commit.
    """

    __slots__ = ("_context", "task", "interpret", "next")

    def __init__(
        self,
        context: ExecutionContext,
        task: Task[Any],
        interpret: Callable[[Any], None],
        next: Callable[[Any], None],
    ) -> None:
        self._context = context
        self.task = task
        self.interpret = interpret
        self.next = next

    @property
    def state(self) -> Any:
        return self._context.state

    @property
    def dependencies(self) -> Any:
        return self._context.dependencies

    def set_state(self, mutator: Callable[[Any], Any]) -> Any:
        return self._context.set_state(mutator)

    def call(self, computation: Callable[..., Any], event: Any = NO_EVENT) -> Task[Any]:
        if event is NO_EVENT:
            return self._context.call(computation)
        return self._context.call(computation, event)


def _ensure_callable(value: object, *, name: str) -> None:
    if not callable(value):
        raise TypeError(f"{name} must be callable, got {type(value).__name__}")


@dataclass(frozen=True)
class CallOperator(Operator):
    """Spawn a nested computation and suspend until its task settles."""

    computation: Callable[..., Any]
    event: Any = NO_EVENT

    def __post_init__(self) -> None:
        _ensure_callable(self.computation, name="computation")

    def run(self, api: OperatorApi) -> None:
        api.interpret(api.call(self.computation, self.event))


@dataclass(frozen=True)
class GetStateOperator(Operator):
    """Resume with the current state snapshot."""

    def run(self, api: OperatorApi) -> None:
        api.next(api.state)


@dataclass(frozen=True)
class GetDependenciesOperator(Operator):
    """Resume with the injected dependencies."""

    def run(self, api: OperatorApi) -> None:
        api.next(api.dependencies)


def call(computation: Callable[..., Any], event: Any = NO_EVENT) -> CallOperator:
    """
    Spawn ``computation`` through the execution context and wait for it.

    Example:
        def load_user(user_id):
            user = yield call(fetch_user, user_id)
            return user
    """
    return CallOperator(computation, event)


def get_state() -> GetStateOperator:
    return GetStateOperator()


def get_dependencies() -> GetDependenciesOperator:
    return GetDependenciesOperator()


__all__ = [
    "CallOperator",
    "GetDependenciesOperator",
    "GetStateOperator",
    "Operator",
    "OperatorApi",
    "call",
    "get_dependencies",
    "get_state",
]
