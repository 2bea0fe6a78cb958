"""
Pytest configuration for concurrent_state tests.

Provides a recording execution context (plain dict state, mock ``set_state``
and ``call``) and a TaskScope fixture that is closed after each test.
"""

from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import Mock

import pytest

from concurrent_state import TaskScope


class RecordingContext:
    """Minimal execution context whose collaborators are mocks."""

    def __init__(self) -> None:
        self.state: Any = {}
        self.dependencies: Any = {}
        self.set_state = Mock(side_effect=self._apply)
        self.call = Mock()

    def _apply(self, mutator: Callable[[Any], Any]) -> Any:
        new_state = mutator(self.state)
        if new_state is not None:
            self.state = new_state
        return new_state


@pytest.fixture
def ctx() -> RecordingContext:
    return RecordingContext()


@pytest.fixture
def scope() -> Iterator[TaskScope]:
    task_scope = TaskScope({})
    yield task_scope
    task_scope.close()
