# ABOUTME: Recover state handler and the shared error handler used by the other turn states.
# ABOUTME: Recovery always produces the static fallback output and ends the turn at AwaitInput.

from loguru import logger

from agentic_rpg.models.game_state import StateResult, TurnContext, TurnState
from agentic_rpg.orchestration.exceptions import ValidationRejected
from agentic_rpg.orchestration.nodes.helpers import fallback_output


async def handle_error(ctx: TurnContext, error: Exception) -> StateResult:
    """Error handler for the working states: record the failure, then recover"""
    entry = {"error": f"{type(error).__name__}: {error}"}
    if isinstance(error, ValidationRejected):
        entry["validation_errors"] = list(error.errors)
        entry["revisions"] = error.attempts
    ctx.trace.add_output("error", entry)
    return StateResult(TurnState.RECOVER, entry)


def _create_recover_node():
    """
    Factory for recover_node.

    Returns:
        recover_node async handler
    """

    async def recover_node(ctx: TurnContext) -> StateResult:
        logger.warning(
            f"[STATE: RECOVER] Turn {ctx.turn_number} recovering after: "
            f"{ctx.errors[-1] if ctx.errors else 'unknown error'}"
        )
        ctx.final_output = fallback_output()
        ctx.recovered = True
        ctx.trace.add_output("recovery", {"errors": list(ctx.errors)})
        return StateResult(TurnState.AWAIT_INPUT)

    return recover_node


async def recover_error_handler(ctx: TurnContext, error: Exception) -> StateResult:
    """Last resort for a failing recover_node; builds the fallback without touching the trace"""
    logger.error(f"[STATE: RECOVER] Recovery handler failed: {error}")
    ctx.final_output = fallback_output()
    ctx.recovered = True
    return StateResult(TurnState.AWAIT_INPUT)
