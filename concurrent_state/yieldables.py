"""
Effect descriptors a computation may yield.

Raw yielded values are classified into a closed set of variants. A yield site
can also construct a variant explicitly to pin its interpretation, e.g.
``yield ApplyMutator(obj)`` for a callable object that is also awaitable.

Precedence for raw values, first match wins:

1. future-like (asyncio or concurrent futures, ``add_done_callback`` objects,
   awaitables other than Task)
2. generator function (spawned as a sub-task)
3. any other callable (state mutator)
4. Operator
5. Task
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from concurrent_state.errors import InvalidYieldableError
from concurrent_state.operators import Operator
from concurrent_state.task import Task


@dataclass(frozen=True)
class AwaitFuture:
    future: Any


@dataclass(frozen=True)
class SpawnComputation:
    computation: Callable[..., Any]


@dataclass(frozen=True)
class ApplyMutator:
    mutator: Callable[[Any], Any]


@dataclass(frozen=True)
class RunOperator:
    operator: Operator


@dataclass(frozen=True)
class AwaitTask:
    task: Task[Any]


Yieldable: TypeAlias = AwaitFuture | SpawnComputation | ApplyMutator | RunOperator | AwaitTask

_VARIANTS = (AwaitFuture, SpawnComputation, ApplyMutator, RunOperator, AwaitTask)


def is_future_like(value: object) -> bool:
    if isinstance(value, Task):
        return False
    if isinstance(value, (asyncio.Future, concurrent.futures.Future)):
        return True
    if callable(getattr(value, "add_done_callback", None)):
        return True
    return inspect.isawaitable(value)


def classify(value: Any, *, created_at: str | None = None) -> Yieldable:
    """Map a yielded value onto its descriptor variant."""

    if isinstance(value, _VARIANTS):
        return value
    if is_future_like(value):
        return AwaitFuture(value)
    if inspect.isgeneratorfunction(value):
        return SpawnComputation(value)
    if callable(value) and not isinstance(value, Operator):
        return ApplyMutator(value)
    if isinstance(value, Operator):
        return RunOperator(value)
    if isinstance(value, Task):
        return AwaitTask(value)
    raise InvalidYieldableError(value, created_at=created_at)


__all__ = [
    "ApplyMutator",
    "AwaitFuture",
    "AwaitTask",
    "RunOperator",
    "SpawnComputation",
    "Yieldable",
    "classify",
    "is_future_like",
]
