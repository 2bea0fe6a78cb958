"""
Tests for Task.chain: sequencing, failure short-circuit and cancellation.
"""

from unittest.mock import Mock

import pytest

from concurrent_state import Task, TaskResolver


def resolved_with(value):
    return Task(lambda resolver: resolver.resolve(value))


def pending() -> Task:
    return Task(lambda resolver: None)


def test_chain_feeds_result_into_next_task():
    task = resolved_with(42).chain(
        lambda x: Task(lambda resolver: resolver.resolve(x + 10)).chain(
            lambda y: Task(lambda resolver: resolver.resolve(y + 20))
        )
    )

    task.run()

    assert task.result == 72


def test_chain_by_reference():
    base = resolved_with(42)
    plus_ten = base.chain(lambda x: resolved_with(x + 10))
    plus_twenty = plus_ten.chain(lambda x: resolved_with(x + 10))

    plus_twenty.run()

    assert base.result == 42
    assert plus_ten.result == 52
    assert plus_twenty.result == 62


def test_chain_returns_an_idle_task():
    base = resolved_with(1)
    chained = base.chain(lambda x: resolved_with(x))

    assert chained.is_idle
    assert base.is_idle


def test_each_task_executes_once():
    base_runner = Mock(side_effect=lambda resolver: resolver.resolve(42))
    base = Task(base_runner)
    second = base.chain(lambda x: resolved_with(x + 10))
    third = second.chain(lambda x: resolved_with(x + 10))
    base_finished, second_finished, third_finished = Mock(), Mock(), Mock()

    base.run(on_finished=base_finished)
    second.run(on_finished=second_finished)
    third.run(on_finished=third_finished)

    base_runner.assert_called_once()
    base_finished.assert_called_once_with()
    second_finished.assert_called_once_with()
    third_finished.assert_called_once_with()


def test_two_chains_share_one_base_run():
    base_runner = Mock(side_effect=lambda resolver: resolver.resolve(1))
    base = Task(base_runner)

    left = base.chain(lambda x: resolved_with(x + 1)).run()
    right = base.chain(lambda x: resolved_with(x + 2)).run()

    base_runner.assert_called_once()
    assert left.result == 2
    assert right.result == 3


def test_rejected_base_skips_lift():
    error = ValueError("base failed")
    lift = Mock()
    chained = Task(lambda resolver: resolver.reject(error)).chain(lift).run()

    lift.assert_not_called()
    assert chained.is_rejected
    assert chained.error is error


def test_rejected_continuation_rejects_chain():
    error = KeyError("second failed")
    chained = resolved_with(1).chain(lambda _: Task(lambda r: r.reject(error))).run()

    assert chained.error is error


def test_lift_exception_rejects_chain():
    def lift(value):
        raise TypeError("cannot lift")

    chained = resolved_with(1).chain(lift).run()

    assert chained.is_rejected
    assert isinstance(chained.error, TypeError)


def test_chain_waits_for_base():
    captured: dict = {}

    def runner(resolver: TaskResolver) -> None:
        captured["resolver"] = resolver

    continuation = resolved_with("next")
    chained = Task(runner).chain(lambda _: continuation).run()

    assert chained.is_running
    assert continuation.is_idle

    captured["resolver"].resolve("base")

    assert chained.result == "next"


def test_cancelled_base_cancels_lifted_task():
    base = pending()
    continuation = resolved_with("late")
    lift = Mock(return_value=continuation)
    chained = base.chain(lift).run()

    base.cancel()

    lift.assert_called_once_with(None)
    assert continuation.is_cancelled
    assert chained.is_cancelled


def test_cancel_chain_cancels_live_base():
    base = pending()
    continuation = resolved_with("late")
    chained = base.chain(lambda _: continuation).run()

    chained.cancel()

    assert base.is_cancelled
    assert continuation.is_cancelled
    assert chained.is_cancelled


def test_cancel_chain_cancels_live_continuation():
    base = resolved_with(1)
    continuation = pending()
    chained = base.chain(lambda _: continuation).run()
    assert continuation.is_running

    chained.cancel()

    assert base.is_resolved
    assert continuation.is_cancelled
    assert chained.is_cancelled


def test_cancelled_continuation_cancels_chain():
    continuation = pending()
    chained = resolved_with(1).chain(lambda _: continuation).run()

    continuation.cancel()

    assert chained.is_cancelled


def test_cancelled_base_cancels_chain_when_lift_rejects_none():
    base = pending()

    def lift(result):
        return resolved_with(result["x"])

    chained = base.chain(lift).run()

    with pytest.raises(TypeError):
        base.cancel()

    assert base.is_cancelled
    assert chained.is_cancelled
