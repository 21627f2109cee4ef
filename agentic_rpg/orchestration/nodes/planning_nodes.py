# ABOUTME: Plan and ToolExec state handlers: moderate input, build a seeded plan, run its steps.
# ABOUTME: Node factories close over their dependencies and return async handlers taking a TurnContext.

from loguru import logger

from agentic_rpg.agents.planner import Planner
from agentic_rpg.models.game_state import StateResult, TurnContext, TurnState
from agentic_rpg.models.tool_results import ToolError
from agentic_rpg.tools.executor import ToolExecutor
from agentic_rpg.utils.logging import log_turn_event
from agentic_rpg.validation.content_policy import ContentPolicy


def _create_plan_node(planner: Planner, policy: ContentPolicy):
    """
    Factory for plan_node with injected dependencies.

    Args:
        planner: Builds the seeded step list
        policy: Moderates the raw player input

    Returns:
        plan_node async handler
    """

    async def plan_node(ctx: TurnContext) -> StateResult:
        """
        Build the plan for this attempt. A revision re-plans with the same
        turn seed and passes the rejected verdict's errors as feedback.
        """
        attempt = ctx.revision_count + 1
        logger.info(f"[STATE: PLAN] Turn {ctx.turn_number}, attempt {attempt}")

        moderation = policy.moderate_player_input(
            ctx.player_input, ctx.session.settings.age_rating
        )
        if not moderation.allowed:
            logger.warning(f"[STATE: PLAN] Player input refused: {moderation.reason}")

        feedback = None
        if ctx.verdict is not None and not ctx.verdict.approved:
            feedback = list(ctx.verdict.errors)

        ctx.plan = planner.create_plan(
            moderation.text,
            ctx.scene,
            ctx.character,
            ctx.turn_seed,
            attempt=attempt,
            revision_feedback=feedback,
            moderation_reason=None if moderation.allowed else moderation.reason,
            images_enabled=ctx.session.settings.images_enabled,
        )
        ctx.tool_results = []
        ctx.response = None
        ctx.trace.add_output("plan", ctx.plan.model_dump(mode="json"))

        log_turn_event(
            "Plan created",
            state="PLAN",
            session_id=ctx.session.id,
            turn_number=ctx.turn_number,
            level="DEBUG",
            steps=len(ctx.plan.steps),
            action=ctx.plan.action.action_type.value,
        )

        if not ctx.plan.steps:
            return StateResult(TurnState.REDUCE, {"steps": 0})
        return StateResult(TurnState.TOOL_EXEC, {"steps": len(ctx.plan.steps)})

    return plan_node


def _create_tool_exec_node(executor: ToolExecutor):
    """
    Factory for tool_exec_node with injected dependencies.

    Args:
        executor: Dispatches each step to its tool

    Returns:
        tool_exec_node async handler
    """

    async def tool_exec_node(ctx: TurnContext) -> StateResult:
        logger.info(f"[STATE: TOOL_EXEC] Running {len(ctx.plan.steps)} step(s)")

        ctx.tool_results = await executor.execute_plan(ctx.plan, ctx.character, ctx.trace)

        failures = [r for r in ctx.tool_results if isinstance(r, ToolError)]
        for failure in failures:
            ctx.trace.add_output("error", failure.model_dump(mode="json"))
        if failures:
            logger.warning(f"[STATE: TOOL_EXEC] {len(failures)} step(s) failed; continuing")

        return StateResult(
            TurnState.REDUCE,
            {"results": len(ctx.tool_results), "failures": len(failures)},
        )

    return tool_exec_node
