# ABOUTME: Helpers shared by the turn state nodes: action log and state update assembly, fallback output.
# ABOUTME: Pure functions over tool results; nothing here touches session or world state.

from agentic_rpg.config import prompts
from agentic_rpg.models.dice_models import CheckResult, CombatResult, SavingThrowResult
from agentic_rpg.models.entities import Character
from agentic_rpg.models.game_state import (
    CheckLogEntry,
    CombatLogEntry,
    InventoryLogEntry,
    SavingThrowLogEntry,
    StateUpdates,
    SystemLogEntry,
    TurnOutput,
)
from agentic_rpg.models.plan import ActionType, Plan
from agentic_rpg.models.tool_results import ImageJobHandle, InventoryResult, ToolError, WorldUpdateResult


def build_action_log(plan: Plan | None, tool_results: list) -> list:
    """Structured, player-facing record of what the tools resolved, in step order"""
    log = []
    for result in tool_results:
        if isinstance(result, CheckResult):
            log.append(CheckLogEntry(
                ability=result.ability,
                roll=result.natural,
                modifier=result.modifier,
                total=result.total,
                dc=result.dc,
                outcome=result.outcome.value,
                ability_modifier=result.ability_modifier,
                proficiency_bonus=result.proficiency_bonus,
                critical_success=result.critical_success,
                critical_failure=result.critical_failure,
                context=result.context,
            ))
        elif isinstance(result, CombatResult):
            log.append(CombatLogEntry(
                target_id=result.target_id,
                hit=result.hit,
                to_hit_roll=result.to_hit.natural,
                to_hit_modifier=result.to_hit.modifier,
                total=result.to_hit.total,
                target_ac=result.target_ac,
                damage_total=result.damage.total if result.damage else None,
                critical=result.critical,
                defeated="defeated" in result.status_effects,
            ))
        elif isinstance(result, SavingThrowResult):
            log.append(SavingThrowLogEntry(
                target_id=result.target_id,
                roll=result.save.natural,
                modifier=result.save.modifier,
                total=result.save.total,
                dc=result.dc,
                saved=result.saved,
                damage_total=result.damage.total,
            ))
        elif isinstance(result, InventoryResult):
            if result.ok:
                log.append(InventoryLogEntry(
                    gold_delta=result.gold_delta,
                    items_added=list(result.items_added),
                    items_removed=list(result.items_removed),
                ))
            else:
                log.append(SystemLogEntry(message=f"Inventory change refused: {'; '.join(result.errors)}"))
        elif isinstance(result, ToolError):
            log.append(SystemLogEntry(message=f"{result.tool} could not be resolved"))

    if plan is not None:
        if plan.action.moderated:
            log.append(SystemLogEntry(message=f"Action not processed: {plan.action.moderated}"))
        elif plan.action.action_type == ActionType.COMBAT and not plan.action.target_id:
            log.append(SystemLogEntry(message="No target to attack"))
    return log


def build_state_updates(plan: Plan | None, tool_results: list, character: Character) -> StateUpdates:
    """
    Collect the changes a turn will apply at render.

    Refused inventory changes are left out, so an approved output never
    stages a transaction the character can't afford.
    """
    updates = StateUpdates()
    for result in tool_results:
        if isinstance(result, WorldUpdateResult):
            updates.flags.update(result.flags)
        elif isinstance(result, InventoryResult) and result.ok:
            updates.gold_delta += result.gold_delta
            updates.items_add.extend(result.items_added)
            updates.items_remove.extend(result.items_removed)
            for resource, delta in result.resource_deltas.items():
                updates.resource_deltas[resource] = updates.resource_deltas.get(resource, 0) + delta
        elif isinstance(result, CombatResult):
            if result.target_id and result.target_hp_after is not None:
                updates.npc_hp[result.target_id] = result.target_hp_after
        elif isinstance(result, SavingThrowResult):
            if result.target_id == character.id:
                updates.character_hp_delta -= result.damage.total

    if plan is not None:
        updates.time_advance = plan.action.time_advance
        updates.move_to_scene = plan.action.moves_to
    return updates


def find_image_request(tool_results: list) -> ImageJobHandle | None:
    return next((r for r in tool_results if isinstance(r, ImageJobHandle)), None)


def fallback_output() -> TurnOutput:
    """Static, content-safe output used whenever a turn has to recover"""
    return TurnOutput(
        narration=prompts.RECOVERY_NARRATION,
        action_log=[SystemLogEntry(message=prompts.RECOVERY_LOG_MESSAGE)],
        choices=list(prompts.RECOVERY_CHOICES),
        is_fallback=True,
    )
