# ABOUTME: Runs plan steps through a dispatch table keyed by the step's `tool` tag.
# ABOUTME: A failing step becomes a ToolError result and is written to the trace; the turn continues.

import time
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from agentic_rpg.models.entities import Character
from agentic_rpg.models.image_job import ETA_SECONDS, ImageMode
from agentic_rpg.models.plan import (
    AttackStep,
    CheckStep,
    ImageRequestStep,
    InventoryUpdateStep,
    Plan,
    SavingThrowStep,
    SkillCheckStep,
    WorldUpdateStep,
)
from agentic_rpg.models.tool_results import ImageJobHandle, ToolError
from agentic_rpg.models.trace import Trace
from agentic_rpg.tools.combat import CombatEngine
from agentic_rpg.tools.exceptions import ToolExecutionFailed
from agentic_rpg.tools.inventory import InventoryTool
from agentic_rpg.tools.rules import RulesEngine
from agentic_rpg.tools.world import WorldStore


class ToolExecutor:
    """Executes typed plan steps against the rules, combat, world and inventory tools"""

    def __init__(
        self,
        rules: RulesEngine,
        combat: CombatEngine,
        world: WorldStore,
        inventory: InventoryTool | None = None,
    ):
        self.rules = rules
        self.combat = combat
        self.world = world
        self.inventory = inventory or InventoryTool()
        self._dispatch: dict[str, Callable[[Any, Character], Awaitable[Any]]] = {
            "rules.check": self._run_check,
            "rules.skill_check": self._run_skill_check,
            "combat.attack": self._run_attack,
            "combat.saving_throw": self._run_saving_throw,
            "world.update": self._run_world_update,
            "inventory.update": self._run_inventory_update,
            "images.request": self._run_image_request,
        }

    @property
    def tools(self) -> list[str]:
        return list(self._dispatch)

    async def execute(self, step, character: Character | None = None, step_index: int | None = None):
        """
        Execute one step.

        Returns:
            The step's ToolResult, or ToolError if the step failed
        """
        handler = self._dispatch.get(step.tool)
        try:
            if handler is None:
                raise ToolExecutionFailed(step.tool, f"Unknown tool: {step.tool}")
            try:
                return await handler(step, character)
            except ToolExecutionFailed:
                raise
            except Exception as e:
                raise ToolExecutionFailed(step.tool, str(e)) from e
        except ToolExecutionFailed as e:
            logger.warning(f"Tool execution failed ({e.tool}): {e.message}")
            return ToolError(tool=e.tool, message=e.message, step_index=step_index)

    async def execute_plan(
        self,
        plan: Plan,
        character: Character,
        trace: Trace | None = None,
    ) -> list:
        """Run every step in order, recording each call in the trace"""
        results = []
        for index, step in enumerate(plan.steps):
            start = time.perf_counter()
            result = await self.execute(step, character, step_index=index)
            duration_ms = (time.perf_counter() - start) * 1000

            if trace is not None:
                trace.add_tool_call(
                    tool=step.tool,
                    step=step.model_dump(mode="json"),
                    result=result.model_dump(mode="json"),
                    duration_ms=duration_ms,
                    attempt=plan.attempt,
                )
            results.append(result)
        return results

    async def _run_check(self, step: CheckStep, character: Character):
        return self.rules.check(
            step.seed,
            step.abilities,
            step.ability,
            proficient=step.proficient,
            proficiency_bonus=step.proficiency_bonus,
            dc=step.dc,
            advantage=step.advantage,
            disadvantage=step.disadvantage,
            context=step.context,
        )

    async def _run_skill_check(self, step: SkillCheckStep, character: Character):
        return self.rules.skill_check(
            step.seed,
            step.abilities,
            step.skill,
            proficiencies=step.proficiencies,
            proficiency_bonus=step.proficiency_bonus,
            dc=step.dc,
            advantage=step.advantage,
            disadvantage=step.disadvantage,
        )

    async def _run_attack(self, step: AttackStep, character: Character):
        return self.combat.resolve_attack(
            step.seed,
            step.to_hit_modifier,
            step.damage_spec,
            step.target_ac,
            target_hp=step.target_hp,
            damage_type=step.damage_type,
            target_id=step.target_id,
        )

    async def _run_saving_throw(self, step: SavingThrowStep, character: Character):
        return self.combat.resolve_saving_throw_effect(
            step.seed,
            step.save_modifier,
            step.dc,
            step.damage_spec,
            half_on_save=step.half_on_save,
            target_hp=step.target_hp,
            damage_type=step.damage_type,
            target_id=step.target_id,
        )

    async def _run_world_update(self, step: WorldUpdateStep, character: Character):
        return await self.world.update_scene(step.scene_id, flags=step.flags)

    async def _run_inventory_update(self, step: InventoryUpdateStep, character: Character):
        return self.inventory.preview(
            character,
            gold_delta=step.gold_delta,
            items_add=step.items_add,
            items_remove=step.items_remove,
            resource_deltas=step.resource_deltas,
        )

    async def _run_image_request(self, step: ImageRequestStep, character: Character):
        return ImageJobHandle(
            scene_id=step.scene_id,
            prompt=step.prompt,
            mode=step.mode,
            seed=step.seed,
            size=step.size,
            eta_seconds=ETA_SECONDS[ImageMode(step.mode)],
        )
