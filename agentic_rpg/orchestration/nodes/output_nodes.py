# ABOUTME: Reduce, Safety and Render state handlers: assemble the turn output, validate it, apply it.
# ABOUTME: Safety owns the revision bound; Render applies staged updates and hands images to the pipeline.

from loguru import logger

from agentic_rpg.agents.exceptions import NarrationFailed
from agentic_rpg.agents.narrator import NarrationGenerator, TemplateNarrator
from agentic_rpg.config import prompts
from agentic_rpg.models.game_state import StateResult, TurnContext, TurnOutput, TurnState
from agentic_rpg.models.tool_results import ImageJobHandle
from agentic_rpg.orchestration.exceptions import ValidationRejected
from agentic_rpg.orchestration.nodes.helpers import (
    build_action_log,
    build_state_updates,
    find_image_request,
)
from agentic_rpg.tools.inventory import InventoryTool
from agentic_rpg.tools.world import WorldStore
from agentic_rpg.utils.logging import log_turn_event
from agentic_rpg.validation.safety_validator import SafetyValidator
from agentic_rpg.workers.image_pipeline import ImageJobPipeline


def _create_reduce_node(narrator: NarrationGenerator, fallback: TemplateNarrator):
    """
    Factory for reduce_node with injected dependencies.

    Args:
        narrator: Primary narration generator
        fallback: Deterministic narrator used when the primary fails

    Returns:
        reduce_node async handler
    """

    async def reduce_node(ctx: TurnContext) -> StateResult:
        logger.info(f"[STATE: REDUCE] Assembling output from {len(ctx.tool_results)} result(s)")

        plan = ctx.plan
        mechanical = [r for r in ctx.tool_results if not isinstance(r, ImageJobHandle)]
        action_log = build_action_log(plan, ctx.tool_results)
        updates = build_state_updates(plan, ctx.tool_results, ctx.character)

        if plan is not None and plan.action.moderated:
            narration = prompts.MODERATED_INPUT_NARRATION.format(reason=plan.action.moderated)
            choices = fallback.choices_for(ctx.scene)
        else:
            feedback = plan.revision_feedback if plan is not None else None
            try:
                draft = await narrator.generate(
                    ctx.scene,
                    ctx.character,
                    ctx.player_input,
                    mechanical,
                    ctx.session.settings.age_rating,
                    seed=ctx.turn_seed,
                    revision_feedback=feedback or None,
                )
            except Exception as e:
                level = "WARNING" if isinstance(e, NarrationFailed) else "ERROR"
                logger.log(
                    level,
                    f"[STATE: REDUCE] Narration failed ({type(e).__name__}), using templates: {e}",
                )
                ctx.trace.add_output("error", {"state": "reduce", "error": str(e)})
                draft = fallback.render(
                    ctx.scene, ctx.character, mechanical, ctx.turn_seed, ctx.player_input
                )
            narration = draft.narration
            choices = draft.choices or fallback.choices_for(ctx.scene)

        ctx.response = TurnOutput(
            narration=narration,
            action_log=action_log,
            choices=choices,
            state_updates=updates,
            image_request=find_image_request(ctx.tool_results),
        )
        return StateResult(TurnState.SAFETY, {"log_entries": len(action_log)})

    return reduce_node


def _create_safety_node(validator: SafetyValidator, max_revision_attempts: int):
    """
    Factory for safety_node with injected dependencies.

    Args:
        validator: Stateless output validator
        max_revision_attempts: Plan re-entries allowed before the turn recovers

    Returns:
        safety_node async handler
    """

    async def safety_node(ctx: TurnContext) -> StateResult:
        """
        Approve -> Render. Reject -> Plan, until the revision count reaches
        max_revision_attempts; the next rejection raises ValidationRejected.

        Raises:
            ValidationRejected: When a rejected output has no revisions left
        """
        verdict = validator.validate(
            ctx.response,
            scene=ctx.scene,
            character=ctx.character,
            age_rating=ctx.session.settings.age_rating,
        )
        ctx.verdict = verdict
        ctx.trace.add_output("validation", verdict.model_dump(mode="json"))

        if verdict.approved:
            logger.info(f"[STATE: SAFETY] Approved ({len(verdict.warnings)} warning(s))")
            return StateResult(TurnState.RENDER, {"warnings": list(verdict.warnings)})

        if ctx.revision_count >= max_revision_attempts:
            logger.warning(
                f"[STATE: SAFETY] Rejected after {ctx.revision_count} revision(s): {verdict.errors}"
            )
            raise ValidationRejected(verdict.errors, attempts=ctx.revision_count)

        ctx.revision_count += 1
        log_turn_event(
            "Output rejected, re-planning",
            state="SAFETY",
            session_id=ctx.session.id,
            turn_number=ctx.turn_number,
            level="WARNING",
            revision=ctx.revision_count,
            errors=list(verdict.errors),
        )
        return StateResult(TurnState.PLAN, {"errors": list(verdict.errors)})

    return safety_node


def _create_render_node(
    world: WorldStore,
    inventory: InventoryTool,
    image_pipeline: ImageJobPipeline | None = None,
):
    """
    Factory for render_node with injected dependencies.

    Args:
        world: Scene state store (NPC hit points, in-game time)
        inventory: Applies the approved inventory change
        image_pipeline: Receives the approved image request, if any

    Returns:
        render_node async handler
    """

    async def render_node(ctx: TurnContext) -> StateResult:
        output = ctx.response
        updates = output.state_updates
        character = ctx.character
        logger.info(f"[STATE: RENDER] Applying updates for turn {ctx.turn_number}")

        inventory.apply(
            character,
            gold_delta=updates.gold_delta,
            items_add=updates.items_add,
            items_remove=updates.items_remove,
            resource_deltas=updates.resource_deltas,
        )
        if updates.character_hp_delta:
            character.hp.current = max(
                0, min(character.hp.max, character.hp.current + updates.character_hp_delta)
            )
        if updates.npc_hp:
            await world.set_npc_hp(ctx.scene.id, updates.npc_hp)
        if updates.time_advance:
            world.advance_time(updates.time_advance)
        if updates.move_to_scene:
            ctx.session.current_scene_id = updates.move_to_scene

        refreshed = world.get_scene(ctx.scene.id)
        if refreshed is not None:
            ctx.scene = refreshed

        if output.image_request is not None and image_pipeline is not None:
            request = output.image_request
            try:
                ticket = await image_pipeline.request_image(
                    request.scene_id,
                    request.prompt,
                    mode=request.mode,
                    seed=request.seed,
                    size=request.size,
                )
            except Exception as e:
                logger.warning(f"[STATE: RENDER] Image request dropped ({type(e).__name__}): {e}")
                output.image_request = None
            else:
                output.image_request = request.model_copy(update={
                    "job_id": ticket.job_id,
                    "eta_seconds": ticket.eta_seconds,
                    "status": ticket.status.value,
                })

        ctx.final_output = output
        ctx.trace.add_output("render", {
            "narration_words": len(output.narration.split()),
            "choices": len(output.choices),
            "image_job": output.image_request.job_id if output.image_request else None,
        })
        return StateResult(TurnState.AWAIT_INPUT)

    return render_node
