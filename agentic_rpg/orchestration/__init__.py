"""Turn orchestration: state machine, handlers and the turn orchestrator"""

from .exceptions import IllegalTransition, MissingStateHandler, ValidationRejected
from .replay import ReplayMismatch, ReplayReport, replay_trace
from .state_machine import LEGAL_TRANSITIONS, RESTING_STATES, TurnStateMachine, is_legal
from .turn_orchestrator import TurnOrchestrator

__all__ = [
    # State machine
    "LEGAL_TRANSITIONS",
    "RESTING_STATES",
    "TurnStateMachine",
    "is_legal",
    # Orchestrator
    "TurnOrchestrator",
    # Replay
    "ReplayMismatch",
    "ReplayReport",
    "replay_trace",
    # Exceptions
    "IllegalTransition",
    "MissingStateHandler",
    "ValidationRejected",
]
