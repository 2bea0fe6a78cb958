"""
Strategies for composing concurrent invocations of the same computation.

A strategy decides which of two tasks (the one already active for a
computation and the one just requested) is authoritative going forward, and
what happens to the other one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from frozendict import frozendict

from concurrent_state.errors import UnknownStrategyError
from concurrent_state.task import Task

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


class TaskStrategy(ABC, Generic[T]):
    """Pure composition of an old and a new task."""

    name: str = ""

    @abstractmethod
    def compose(self, old_task: Task[T], new_task: Task[T]) -> Task[T]: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DefaultStrategy(TaskStrategy[T]):
    """Run every invocation; the new task wins."""

    name = "default"

    def compose(self, old_task: Task[T], new_task: Task[T]) -> Task[T]:
        return new_task


class ChainStrategy(TaskStrategy[T]):
    """Queue the new invocation behind the old one."""

    name = "chain"

    def compose(self, old_task: Task[T], new_task: Task[T]) -> Task[T]:
        return old_task.chain(lambda _: new_task)


class SwitchStrategy(TaskStrategy[T]):
    """Cancel the old invocation and switch over to the new one."""

    name = "switch"

    def compose(self, old_task: Task[T], new_task: Task[T]) -> Task[T]:
        old_task.cancel()
        return new_task


class DropStrategy(TaskStrategy[T]):
    """Keep a running invocation and drop the new one."""

    name = "drop"

    def compose(self, old_task: Task[T], new_task: Task[T]) -> Task[T]:
        if old_task.is_running:
            new_task.cancel()
            return old_task
        return new_task


def default_strategy() -> DefaultStrategy[Any]:
    return DefaultStrategy()


def chain_strategy() -> ChainStrategy[Any]:
    return ChainStrategy()


def switch_strategy() -> SwitchStrategy[Any]:
    return SwitchStrategy()


def drop_strategy() -> DropStrategy[Any]:
    return DropStrategy()


STRATEGIES: frozendict[str, TaskStrategy[Any]] = frozendict(
    {
        "default": DefaultStrategy(),
        "chain": ChainStrategy(),
        "switch": SwitchStrategy(),
        "drop": DropStrategy(),
    }
)


def get_strategy(name: str) -> TaskStrategy[Any]:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise UnknownStrategyError(name, tuple(STRATEGIES)) from None


def use_strategy(strategy: TaskStrategy[Any] | str) -> Callable[[F], F]:
    """
    Attach a strategy to a computation.

    Example:
        @use_strategy("switch")
        def search(query):
            results = yield fetch(query)
            return results
    """
    resolved = get_strategy(strategy) if isinstance(strategy, str) else strategy
    if not isinstance(resolved, TaskStrategy):
        raise TypeError(f"strategy must be TaskStrategy or str, got {type(strategy).__name__}")

    def decorate(computation: F) -> F:
        computation.strategy = resolved  # type: ignore[attr-defined]
        return computation

    return decorate


def strategy_of(computation: Callable[..., Any]) -> TaskStrategy[Any] | None:
    candidate = getattr(computation, "strategy", None)
    if isinstance(candidate, TaskStrategy):
        return candidate
    return None


__all__ = [
    "STRATEGIES",
    "ChainStrategy",
    "DefaultStrategy",
    "DropStrategy",
    "SwitchStrategy",
    "TaskStrategy",
    "chain_strategy",
    "default_strategy",
    "drop_strategy",
    "get_strategy",
    "strategy_of",
    "switch_strategy",
    "use_strategy",
]
