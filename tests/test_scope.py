"""
Tests for TaskScope: copy-on-write state, strategy application per
computation, task tracking and teardown.
"""

from unittest.mock import Mock

import pytest

from concurrent_state import (
    ScopeClosedError,
    Task,
    TaskScope,
    call,
    get_dependencies,
    get_state,
    use_strategy,
)


def test_set_state_is_copy_on_write():
    scope = TaskScope({"items": [1]})
    before = scope.state

    returned = scope.set_state(lambda state: state["items"].append(2))

    assert returned is None
    assert before == {"items": [1]}
    assert scope.state == {"items": [1, 2]}
    assert scope.state is not before


def test_set_state_accepts_replacement():
    scope = TaskScope({"count": 1})

    returned = scope.set_state(lambda state: {"count": state["count"] + 1})

    assert returned == {"count": 2}
    assert scope.state == {"count": 2}


def test_subscribers_see_each_commit():
    scope = TaskScope({"count": 0})
    listener = Mock()
    unsubscribe = scope.subscribe(listener)

    scope.set_state(lambda state: {"count": 1})
    unsubscribe()
    scope.set_state(lambda state: {"count": 2})

    listener.assert_called_once_with({"count": 1})


def test_computation_reads_fresh_state(scope):
    def computation():
        yield lambda state: state.update(count=1)
        first = yield get_state()
        yield lambda state: state.update(count=state["count"] + 1)
        second = yield get_state()
        return first["count"], second["count"]

    assert scope.call(computation).result == (1, 2)
    assert scope.state == {"count": 2}


def test_dependencies_are_injected():
    api = object()
    scope = TaskScope(dependencies={"api": api})

    def computation():
        dependencies = yield get_dependencies()
        return dependencies["api"]

    assert scope.call(computation).result is api


def test_nested_computations_run_in_the_scope(scope):
    def child(amount=2):
        yield lambda state: state.update(total=state.get("total", 0) + amount)
        return amount

    def parent():
        first = yield child
        second = yield call(child, 5)
        return first + second

    assert scope.call(parent).result == 7
    assert scope.state == {"total": 7}


def _waiting_computation(resolvers: list):
    def search(query):
        result = yield Task(lambda resolver: resolvers.append(resolver))
        return f"{query}:{result}"

    return search


def test_switch_cancels_previous_invocation(scope):
    resolvers: list = []
    search = use_strategy("switch")(_waiting_computation(resolvers))

    first = scope.call(search, "a")
    second = scope.call(search, "b")

    assert first.is_cancelled
    assert second.is_running

    resolvers[1].resolve("x")

    assert second.result == "b:x"


def test_drop_ignores_new_invocation_while_running(scope):
    resolvers: list = []
    search = use_strategy("drop")(_waiting_computation(resolvers))

    first = scope.call(search, "a")
    second = scope.call(search, "b")

    assert second is first
    assert len(resolvers) == 1

    resolvers[0].resolve("x")
    third = scope.call(search, "c")

    assert first.result == "a:x"
    assert third is not first
    assert len(resolvers) == 2


def test_chain_queues_new_invocation(scope):
    resolvers: list = []
    search = use_strategy("chain")(_waiting_computation(resolvers))

    first = scope.call(search, "a")
    second = scope.call(search, "b")

    assert len(resolvers) == 1

    resolvers[0].resolve(1)

    assert first.result == "a:1"
    assert len(resolvers) == 2

    resolvers[1].resolve(2)

    assert second.result == "b:2"


def test_without_strategy_invocations_run_concurrently(scope):
    resolvers: list = []
    search = _waiting_computation(resolvers)

    first = scope.call(search, "a")
    second = scope.call(search, "b")

    assert first.is_running
    assert second.is_running
    assert len(resolvers) == 2


def test_task_state_and_watchers(scope):
    def computation():
        return "done"
        yield

    handler = Mock()
    assert scope.task_state(computation).is_idle

    unwatch = scope.watch(computation, handler)
    task = scope.call(computation)
    unwatch()
    scope.call(computation)

    handler.assert_called_once_with(task)
    assert scope.task_state(computation).result == "done"


def test_finished_tasks_are_forgotten(scope):
    never = Task(lambda resolver: None)

    def quick():
        return 1
        yield

    def slow():
        yield never

    scope.call(quick)
    slow_task = scope.call(slow)

    assert scope.running_tasks == (slow_task,)


def test_close_cancels_running_tasks():
    cleanup = Mock()

    def computation():
        try:
            yield Task(lambda resolver: None)
        finally:
            cleanup()

    with TaskScope() as scope:
        task = scope.call(computation)

    assert task.is_cancelled
    assert scope.is_closed
    cleanup.assert_called_once_with()
    with pytest.raises(ScopeClosedError):
        scope.call(computation)


def test_close_cancels_queued_invocations():
    resolvers: list = []
    search = use_strategy("chain")(_waiting_computation(resolvers))
    scope = TaskScope()

    first = scope.call(search, "a")
    second = scope.call(search, "b")
    scope.close()

    assert first.is_cancelled
    assert second.is_cancelled
    assert len(resolvers) == 1


def test_close_reports_cleanup_errors_after_cancelling_everything():
    def failing():
        try:
            yield Task(lambda resolver: None)
        finally:
            raise RuntimeError("cleanup failed")

    def waiting():
        yield Task(lambda resolver: None)

    scope = TaskScope()
    broken = scope.call(failing)
    other = scope.call(waiting)

    with pytest.raises(RuntimeError, match="cleanup failed"):
        scope.close()

    assert broken.is_cancelled
    assert other.is_cancelled


def test_switch_starts_new_task_when_old_cleanup_fails(scope):
    attempts: list = []

    @use_strategy("switch")
    def search(query):
        attempts.append(query)
        try:
            yield Task(lambda resolver: None)
        finally:
            if query == "a":
                raise RuntimeError("cleanup failed")

    first = scope.call(search, "a")

    with pytest.raises(RuntimeError, match="cleanup failed"):
        scope.call(search, "b")

    second = scope.task_state(search)
    assert first.is_cancelled
    assert second.is_running
    assert attempts == ["a", "b"]
    assert scope.running_tasks == (second,)

    third = scope.call(search, "c")

    assert second.is_cancelled
    assert third.is_running
