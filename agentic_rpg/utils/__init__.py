# ABOUTME: Utility module exports for structured logging.
# ABOUTME: Provides logging.py (loguru config plus turn, state and job event helpers).

from agentic_rpg.utils.logging import (
    get_logger,
    log_job_event,
    log_state_transition,
    log_turn_event,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_turn_event",
    "log_state_transition",
    "log_job_event",
]
