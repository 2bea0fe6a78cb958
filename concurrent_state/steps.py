"""Resumable computations and their step results.

The interpreter never touches a generator directly. It drives a Computation
through ``resume``/``resume_with_error`` and receives a tagged Step, so the
step loop reads as an explicit state machine.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any, TypeAlias

from concurrent_state.errors import InterpreterInvariantError, TaskCancelled
from concurrent_state.utils import NO_EVENT


@dataclass(frozen=True)
class Yielded:
    """Non-terminal: the computation suspended on an effect descriptor."""

    value: Any


@dataclass(frozen=True)
class Done:
    """Terminal: the computation returned."""

    value: Any


Step: TypeAlias = Yielded | Done


class Computation:
    """A started computation: a generator, or the value a plain function returned."""

    __slots__ = ("_generator", "_immediate", "_finished")

    def __init__(
        self,
        generator: Generator[Any, Any, Any] | None,
        *,
        immediate: Any = None,
    ) -> None:
        self._generator = generator
        self._immediate = immediate
        self._finished = False

    @classmethod
    def start(cls, factory: Callable[..., Any], event: Any = NO_EVENT) -> Computation:
        """Instantiate ``factory`` with ``event`` (omitted when NO_EVENT)."""

        produced = factory() if event is NO_EVENT else factory(event)
        if inspect.isgenerator(produced):
            return cls(produced)
        return cls(None, immediate=produced)

    @property
    def is_finished(self) -> bool:
        return self._finished

    @property
    def is_executing(self) -> bool:
        return self._generator is not None and self._generator.gi_running

    def resume(self, value: Any = None) -> Step:
        if self._generator is None:
            self._ensure_open()
            self._finished = True
            return Done(self._immediate)
        return self._advance(self._generator.send, value)

    def resume_with_error(self, error: BaseException) -> Step:
        if self._generator is None:
            self._ensure_open()
            self._finished = True
            raise error
        return self._advance(self._generator.throw, error)

    def cancel(self, signal: TaskCancelled) -> None:
        """
        Throw ``signal`` into the suspended generator so its cleanup runs.

        Re-raising the same signal object, or returning, ends the computation
        cleanly. Any other exception propagates to the caller. A computation
        that is executing right now is left alone; the driver closes it once
        control comes back.
        """

        if self._finished or self.is_executing:
            return
        self._finished = True
        if self._generator is None:
            return
        try:
            self._generator.throw(signal)
        except StopIteration:
            return
        except TaskCancelled as exc:
            if exc is signal:
                return
            raise
        # Yielded again while handling the signal.
        self._generator.close()

    def close(self) -> None:
        self._finished = True
        if self._generator is not None:
            self._generator.close()

    def _ensure_open(self) -> None:
        if self._finished:
            raise InterpreterInvariantError("Cannot resume a finished computation")

    def _advance(self, method: Callable[[Any], Any], argument: Any) -> Step:
        self._ensure_open()
        try:
            yielded = method(argument)
        except StopIteration as stop:
            self._finished = True
            return Done(stop.value)
        except BaseException:
            self._finished = True
            raise
        return Yielded(yielded)


__all__ = ["Computation", "Done", "Step", "Yielded"]
