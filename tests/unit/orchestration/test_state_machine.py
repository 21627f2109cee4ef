# ABOUTME: Unit tests for TurnStateMachine transitions, handler dispatch, error routing and metrics.
# ABOUTME: Handlers are simple async stubs; the machine is exercised without an orchestrator.

import itertools

import pytest

from agentic_rpg.models.game_state import StateResult, TurnState
from agentic_rpg.orchestration.exceptions import IllegalTransition, MissingStateHandler
from agentic_rpg.orchestration.state_machine import LEGAL_TRANSITIONS, TurnStateMachine, is_legal
from conftest import make_context


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def plan_ok(ctx):
    return StateResult(TurnState.TOOL_EXEC, {"steps": 1})


async def plan_boom(ctx):
    raise RuntimeError("boom")


async def to_reduce(ctx, error):
    return StateResult(TurnState.REDUCE, {"handled": str(error)})


async def handler_also_fails(ctx, error):
    raise ValueError("worse")


@pytest.fixture
def machine() -> TurnStateMachine:
    return TurnStateMachine("session-1")


class TestTransitions:
    """Test suite for transition legality and history"""

    @pytest.mark.parametrize("from_state,to_state", list(itertools.product(TurnState, TurnState)))
    def test_table_is_enforced(self, from_state, to_state):
        machine = TurnStateMachine("s")
        machine.state = from_state
        if to_state in LEGAL_TRANSITIONS[from_state]:
            machine.transition(to_state)
            assert machine.state == to_state
        else:
            with pytest.raises(IllegalTransition):
                machine.transition(to_state)
            assert machine.state == from_state

    def test_is_legal(self):
        assert is_legal(TurnState.SAFETY, TurnState.PLAN)
        assert not is_legal(TurnState.IDLE, TurnState.RENDER)
        assert not is_legal(TurnState.RECOVER, TurnState.PLAN)

    def test_history_records_context(self, machine):
        machine.transition(TurnState.PLAN, {"turn": 1})
        machine.transition("reduce")

        history = machine.history
        assert [(r.from_state, r.to_state) for r in history] == [
            (TurnState.IDLE, TurnState.PLAN),
            (TurnState.PLAN, TurnState.REDUCE),
        ]
        assert history[0].context == {"turn": 1}
        history.clear()
        assert len(machine.history) == 2

    def test_reset_is_recorded(self, machine):
        machine.reset()
        assert machine.history == []

        machine.transition(TurnState.PLAN)
        machine.reset()
        assert machine.state == TurnState.IDLE
        assert machine.history[-1].context == {"reset": True}

    def test_resting_and_error_states(self, machine):
        assert machine.is_resting()
        machine.transition(TurnState.RECOVER)
        assert machine.is_in_error_state()
        assert not machine.is_resting()
        machine.transition(TurnState.AWAIT_INPUT)
        assert machine.is_resting()


class TestExecuteState:
    """Test suite for handler dispatch and error routing"""

    @pytest.mark.asyncio
    async def test_missing_handler(self, machine):
        with pytest.raises(MissingStateHandler):
            await machine.execute_state(make_context())

    @pytest.mark.asyncio
    async def test_handler_result_is_returned_not_applied(self, machine):
        machine.register(TurnState.PLAN, plan_ok)
        machine.transition(TurnState.PLAN)

        result = await machine.execute_state(make_context())

        assert result.next_state == TurnState.TOOL_EXEC
        assert machine.state == TurnState.PLAN

    @pytest.mark.asyncio
    async def test_failure_goes_to_error_handler(self, machine):
        machine.register(TurnState.PLAN, plan_boom, to_reduce)
        machine.transition(TurnState.PLAN)
        ctx = make_context()

        result = await machine.execute_state(ctx)

        assert result == StateResult(TurnState.REDUCE, {"handled": "boom"})
        assert ctx.errors == ["plan: boom"]
        assert machine.metrics()["handler_errors"] == 1

    @pytest.mark.asyncio
    async def test_failure_without_error_handler_recovers(self, machine):
        machine.register(TurnState.PLAN, plan_boom)
        machine.transition(TurnState.PLAN)

        result = await machine.execute_state(make_context())

        assert result.next_state == TurnState.RECOVER
        assert result.detail == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_failing_error_handler_recovers(self, machine):
        machine.register(TurnState.PLAN, plan_boom, handler_also_fails)
        machine.transition(TurnState.PLAN)

        result = await machine.execute_state(make_context())

        assert result.next_state == TurnState.RECOVER
        assert result.detail == {"error": "worse"}

    def test_register_merges(self, machine):
        machine.register(TurnState.PLAN, plan_ok)
        machine.register(TurnState.PLAN, error_handler=to_reduce)
        handlers = machine.handlers_for(TurnState.PLAN)
        assert handlers.handler is plan_ok
        assert handlers.error_handler is to_reduce


class TestMetrics:
    """Test suite for state machine metrics"""

    def test_metrics_track_time_and_recoveries(self):
        clock = FakeClock()
        machine = TurnStateMachine("s", clock=clock)
        clock.now = 2.0
        machine.transition(TurnState.PLAN)
        clock.now = 3.0
        machine.transition(TurnState.RECOVER)
        clock.now = 7.5
        assert machine.state_duration() == 4.5

        metrics = machine.metrics()
        assert metrics["current_state"] == "recover"
        assert metrics["total_transitions"] == 2
        assert metrics["recoveries"] == 1
        assert metrics["state_distribution"] == {"plan": 1, "recover": 1}
        assert metrics["average_stay_seconds"] == 1.5

    def test_empty_metrics(self, machine):
        assert machine.metrics()["average_stay_seconds"] == 0.0
