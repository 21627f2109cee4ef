# ABOUTME: Finite-state controller for one session's turn processing, with a fixed legal transition table.
# ABOUTME: Holds per-state (handler, error handler) pairs and an append-only transition history.

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from agentic_rpg.models.game_state import StateResult, TransitionRecord, TurnContext, TurnState
from agentic_rpg.orchestration.exceptions import IllegalTransition, MissingStateHandler
from agentic_rpg.utils.logging import log_state_transition

# Directed edges only; anything else is an IllegalTransition
LEGAL_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.PLAN, TurnState.RECOVER}),
    TurnState.PLAN: frozenset({TurnState.TOOL_EXEC, TurnState.REDUCE, TurnState.RECOVER}),
    TurnState.TOOL_EXEC: frozenset({TurnState.REDUCE, TurnState.RECOVER}),
    TurnState.REDUCE: frozenset({TurnState.SAFETY, TurnState.RECOVER}),
    TurnState.SAFETY: frozenset({TurnState.RENDER, TurnState.PLAN, TurnState.RECOVER}),
    TurnState.RENDER: frozenset({TurnState.AWAIT_INPUT, TurnState.RECOVER}),
    TurnState.AWAIT_INPUT: frozenset({TurnState.PLAN, TurnState.IDLE, TurnState.RECOVER}),
    TurnState.RECOVER: frozenset({TurnState.AWAIT_INPUT, TurnState.IDLE}),
}

# States where a turn is finished
RESTING_STATES = frozenset({TurnState.AWAIT_INPUT, TurnState.IDLE})

StateHandler = Callable[[TurnContext], Awaitable[StateResult]]
ErrorHandler = Callable[[TurnContext, Exception], Awaitable[StateResult]]


@dataclass
class StateHandlers:
    """Handler for a state plus the optional handler for its failures"""
    handler: StateHandler | None = None
    error_handler: ErrorHandler | None = None


def is_legal(from_state: TurnState, to_state: TurnState) -> bool:
    return to_state in LEGAL_TRANSITIONS[from_state]


class TurnStateMachine:
    """
    Turn-phase controller for a single session.

    The machine only validates and records transitions and runs the
    handler registered for the current state; the orchestrator decides
    when to apply the transition a handler asks for. Not safe for
    concurrent turns: callers serialize turns per session.
    """

    def __init__(self, session_id: str, clock: Callable[[], float] = time.monotonic):
        self.session_id = session_id
        self.state = TurnState.IDLE
        self._clock = clock
        self._entered_at = clock()
        self._history: list[TransitionRecord] = []
        self._handlers: dict[TurnState, StateHandlers] = {}
        self._handler_errors = 0
        self._time_in_state: dict[TurnState, float] = {}

    # --- transitions ------------------------------------------------------

    def can_transition(self, to_state: TurnState) -> bool:
        return is_legal(self.state, to_state)

    def transition(self, to_state: TurnState, context: dict[str, Any] | None = None) -> TransitionRecord:
        """
        Move to a new state and append the move to history.

        Args:
            to_state: Target state
            context: Snapshot stored with the history record

        Returns:
            The recorded transition

        Raises:
            IllegalTransition: If the edge is not in LEGAL_TRANSITIONS
        """
        to_state = TurnState(to_state)
        if not self.can_transition(to_state):
            raise IllegalTransition(self.state, to_state)
        return self._record(to_state, context or {})

    def _record(self, to_state: TurnState, context: dict[str, Any]) -> TransitionRecord:
        now = self._clock()
        duration = now - self._entered_at
        self._time_in_state[self.state] = self._time_in_state.get(self.state, 0.0) + duration

        record = TransitionRecord(from_state=self.state, to_state=to_state, context=dict(context))
        self._history.append(record)
        log_state_transition(
            self.state.value,
            to_state.value,
            self.session_id,
            turn_number=context.get("turn"),
            duration_ms=duration * 1000,
        )

        self.state = to_state
        self._entered_at = now
        return record

    @property
    def history(self) -> list[TransitionRecord]:
        """Copy of the transition history, oldest first"""
        return list(self._history)

    # --- handlers ---------------------------------------------------------

    def register(
        self,
        state: TurnState,
        handler: StateHandler | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        """Register or replace the handler and/or error handler for a state"""
        current = self._handlers.get(state, StateHandlers())
        self._handlers[state] = StateHandlers(
            handler=handler or current.handler,
            error_handler=error_handler or current.error_handler,
        )

    def handlers_for(self, state: TurnState) -> StateHandlers | None:
        return self._handlers.get(state)

    async def execute_state(self, ctx: TurnContext) -> StateResult:
        """
        Run the current state's handler and return the transition it requests.

        A raising handler is passed to the state's error handler, whose result
        names the next state. With no error handler, or if the error handler
        itself raises, the result requests Recover.

        Raises:
            MissingStateHandler: If the current state has no handler
        """
        state = self.state
        handlers = self._handlers.get(state)
        if handlers is None or handlers.handler is None:
            raise MissingStateHandler(f"No handler registered for state: {state.value}")

        try:
            return await handlers.handler(ctx)
        except Exception as e:
            self._handler_errors += 1
            logger.warning(f"[STATE: {state.value.upper()}] Handler failed: {type(e).__name__}: {e}")
            ctx.errors.append(f"{state.value}: {e}")

            if handlers.error_handler is None:
                return StateResult(TurnState.RECOVER, {"error": str(e)})

            try:
                return await handlers.error_handler(ctx, e)
            except Exception as handler_error:
                logger.error(
                    f"[STATE: {state.value.upper()}] Error handler failed: {handler_error}"
                )
                return StateResult(TurnState.RECOVER, {"error": str(handler_error)})

    # --- diagnostics ------------------------------------------------------

    def reset(self) -> None:
        """Return to Idle without the legality check; the reset is recorded in history"""
        if self.state != TurnState.IDLE:
            logger.warning(f"Resetting state machine for {self.session_id} from {self.state.value}")
            self._record(TurnState.IDLE, {"reset": True})

    def is_in_error_state(self) -> bool:
        return self.state == TurnState.RECOVER

    def is_resting(self) -> bool:
        return self.state in RESTING_STATES

    def state_duration(self) -> float:
        """Seconds spent in the current state so far"""
        return self._clock() - self._entered_at

    def metrics(self) -> dict[str, Any]:
        distribution: dict[str, int] = {}
        for record in self._history:
            distribution[record.to_state.value] = distribution.get(record.to_state.value, 0) + 1
        total_time = sum(self._time_in_state.values())
        return {
            "current_state": self.state.value,
            "total_transitions": len(self._history),
            "state_distribution": distribution,
            "recoveries": distribution.get(TurnState.RECOVER.value, 0),
            "handler_errors": self._handler_errors,
            "average_stay_seconds": total_time / len(self._history) if self._history else 0.0,
        }
