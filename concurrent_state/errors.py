"""Error types for the concurrent_state task interpreter."""

from __future__ import annotations

from typing import Any


class TaskCancelled(BaseException):
    """Signal thrown into a computation when its task is cancelled.

    Derives from ``BaseException`` so that ``except Exception`` blocks inside a
    computation run their cleanup without swallowing the signal. A computation
    that catches it must re-raise the same object (or return) for the
    cancellation to count as clean.
    """

    def __init__(self, task: Any = None) -> None:
        super().__init__("task cancelled")
        self.task = task


class InvalidYieldableError(TypeError):
    """Raised when a computation yields a value that is not an effect descriptor."""

    def __init__(self, value: Any, *, created_at: str | None = None) -> None:
        self.value = value
        message = (
            f"Cannot interpret yielded value of type {type(value).__name__}: {value!r}\n"
            "Hint: yield a future/awaitable, a Task, a generator function, "
            "a state mutator, or an Operator. Use `yield from` to inline a generator object."
        )
        if created_at:
            message += f"\nTask created at {created_at}"
        super().__init__(message)


class EffectCancelledError(Exception):
    """Delivered to a computation whose awaited future or sub-task was cancelled.

    Cancellation never propagates upward: the awaiting computation sees this
    error and may catch it and continue.
    """

    def __init__(self, source: Any) -> None:
        self.source = source
        super().__init__(f"Awaited effect was cancelled: {source!r}")


class UnknownStrategyError(KeyError):
    """Raised when a strategy is looked up by a name that is not registered."""

    def __init__(self, name: Any, known: tuple[str, ...]) -> None:
        self.name = name
        super().__init__(
            f"Unknown task strategy: {name!r}\n"
            f"Hint: use one of {', '.join(repr(k) for k in known)}"
        )


class ScopeClosedError(RuntimeError):
    """Raised when a task is started on a TaskScope that was already closed."""


class InterpreterInvariantError(Exception):
    """Raised when the interpreter reaches an invalid state."""


__all__ = [
    "EffectCancelledError",
    "InterpreterInvariantError",
    "InvalidYieldableError",
    "ScopeClosedError",
    "TaskCancelled",
    "UnknownStrategyError",
]
