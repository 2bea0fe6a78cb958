"""
concurrent_state - cooperative tasks driven by effect-yielding generators.

Computations are generator functions that yield effect descriptors (futures,
tasks, nested computations, state mutators, operators). The interpreter
resolves each effect, resumes the computation with the outcome, and exposes
the whole run as an observable, cancellable Task.

Example:
    >>> from concurrent_state import TaskScope, get_state
    >>>
    >>> def increment(amount):
    ...     yield lambda state: state.update(count=state["count"] + amount)
    ...     state = yield get_state()
    ...     return state["count"]
    >>>
    >>> scope = TaskScope({"count": 0})
    >>> scope.call(increment, 2).result
    2
"""

from concurrent_state.errors import (
    EffectCancelledError,
    InterpreterInvariantError,
    InvalidYieldableError,
    ScopeClosedError,
    TaskCancelled,
    UnknownStrategyError,
)
from concurrent_state.interpreter import ExecutionContext, from_computation, interpret
from concurrent_state.operators import (
    CallOperator,
    GetDependenciesOperator,
    GetStateOperator,
    Operator,
    OperatorApi,
    call,
    get_dependencies,
    get_state,
)
from concurrent_state.scope import TaskScope
from concurrent_state.steps import Computation, Done, Step, Yielded
from concurrent_state.strategies import (
    STRATEGIES,
    ChainStrategy,
    DefaultStrategy,
    DropStrategy,
    SwitchStrategy,
    TaskStrategy,
    chain_strategy,
    default_strategy,
    drop_strategy,
    get_strategy,
    strategy_of,
    switch_strategy,
    use_strategy,
)
from concurrent_state.task import (
    Task,
    TaskEventNotifications,
    TaskResolver,
    TaskRunner,
    TaskStatus,
    idle_task,
    is_task,
)
from concurrent_state.utils import NO_EVENT
from concurrent_state.yieldables import (
    ApplyMutator,
    AwaitFuture,
    AwaitTask,
    RunOperator,
    SpawnComputation,
    Yieldable,
    classify,
)

__all__ = [
    # Task
    "Task",
    "TaskEventNotifications",
    "TaskResolver",
    "TaskRunner",
    "TaskStatus",
    "idle_task",
    "is_task",
    # Interpreter
    "ExecutionContext",
    "from_computation",
    "interpret",
    "NO_EVENT",
    # Steps
    "Computation",
    "Done",
    "Step",
    "Yielded",
    # Effect descriptors
    "ApplyMutator",
    "AwaitFuture",
    "AwaitTask",
    "RunOperator",
    "SpawnComputation",
    "Yieldable",
    "classify",
    # Operators
    "Operator",
    "OperatorApi",
    "CallOperator",
    "GetDependenciesOperator",
    "GetStateOperator",
    "call",
    "get_dependencies",
    "get_state",
    # Strategies
    "STRATEGIES",
    "TaskStrategy",
    "ChainStrategy",
    "DefaultStrategy",
    "DropStrategy",
    "SwitchStrategy",
    "chain_strategy",
    "default_strategy",
    "drop_strategy",
    "get_strategy",
    "strategy_of",
    "switch_strategy",
    "use_strategy",
    # Scope
    "TaskScope",
    # Errors
    "EffectCancelledError",
    "InterpreterInvariantError",
    "InvalidYieldableError",
    "ScopeClosedError",
    "TaskCancelled",
    "UnknownStrategyError",
]
