# ABOUTME: Narration generators: a deterministic template narrator and an OpenAI-backed narrator.
# ABOUTME: Both turn tool results into narration text plus a short list of player choices.

import random
import re
from typing import Protocol

from loguru import logger
from pydantic import BaseModel, Field

from agentic_rpg.agents.exceptions import InvalidLLMResponse, LLMCallFailed, NarrationFailed
from agentic_rpg.agents.llm_client import LLMClient
from agentic_rpg.agents.planner import COMBAT_PATTERN
from agentic_rpg.config import prompts
from agentic_rpg.models.dice_models import CheckResult, CombatResult, SavingThrowResult
from agentic_rpg.models.entities import AgeRating, Character, Scene
from agentic_rpg.models.tool_results import InventoryResult, ToolError

# Skill-check context suffix -> narration key
SKILL_NARRATION_KEYS = {
    "stealth": "stealth",
    "sleight_of_hand": "lockpick",
    "athletics": "climb",
    "persuasion": "persuade",
    "deception": "deceive",
    "intimidation": "intimidate",
    "investigation": "investigate",
    "perception": "perception",
}


class NarrationDraft(BaseModel):
    narration: str
    choices: list[str] = Field(default_factory=list)


class NarrationGenerator(Protocol):
    """Turns resolved mechanics into prose. Raises NarrationFailed on failure."""

    async def generate(
        self,
        scene: Scene,
        character: Character,
        player_action: str,
        tool_results: list,
        age_rating: AgeRating,
        seed: int,
        revision_feedback: list[str] | None = None,
    ) -> NarrationDraft: ...


def describe_result(result, scene: Scene) -> str:
    """One-line plain description of a tool result, for prompts and logs"""
    if isinstance(result, CheckResult):
        crit = " (natural 20)" if result.critical_success else " (natural 1)" if result.critical_failure else ""
        return (
            f"{result.ability} check ({result.context or 'ability'}): rolled {result.natural}"
            f"{crit}, total {result.total} vs DC {result.dc} -> {result.outcome.value}"
        )
    if isinstance(result, CombatResult):
        target = _target_name(result.target_id, scene)
        if not result.hit:
            return f"Attack on {target}: {result.to_hit.total} vs AC {result.target_ac} -> miss"
        tags = ", ".join(sorted(result.status_effects)) or "none"
        return (
            f"Attack on {target}: {result.to_hit.total} vs AC {result.target_ac} -> hit for "
            f"{result.damage.total} {result.damage.damage_type} damage (tags: {tags})"
        )
    if isinstance(result, SavingThrowResult):
        outcome = "saved" if result.saved else "failed"
        return (
            f"Saving throw: {result.save.total} vs DC {result.dc} -> {outcome}, "
            f"{result.damage.total} damage taken"
        )
    if isinstance(result, InventoryResult):
        if not result.ok:
            return f"Inventory change refused: {'; '.join(result.errors)}"
        parts = []
        if result.items_added:
            parts.append(f"gained {', '.join(result.items_added)}")
        if result.items_removed:
            parts.append(f"lost {', '.join(result.items_removed)}")
        if result.gold_delta:
            parts.append(f"gold {result.gold_delta:+d}")
        return f"Inventory: {', '.join(parts) or 'no change'}"
    if isinstance(result, ToolError):
        return f"Tool {result.tool} failed"
    return ""


def _target_name(target_id: str | None, scene: Scene) -> str:
    npc = scene.get_npc(target_id) if target_id else None
    return npc.name if npc else "your foe"


class TemplateNarrator:
    """
    Deterministic narrator built from fixed templates.

    The same seed and results always produce the same text, which makes it
    the fallback whenever another generator fails.
    """

    def __init__(self, choice_count: int = 3):
        self.choice_count = choice_count

    async def generate(
        self,
        scene: Scene,
        character: Character,
        player_action: str,
        tool_results: list,
        age_rating: AgeRating = AgeRating.TEEN,
        seed: int = 0,
        revision_feedback: list[str] | None = None,
    ) -> NarrationDraft:
        return self.render(scene, character, tool_results, seed, player_action)

    def render(
        self,
        scene: Scene,
        character: Character,
        tool_results: list,
        seed: int = 0,
        player_action: str = "",
    ) -> NarrationDraft:
        """Synchronous core of generate(); never raises for well-formed results"""
        sentences = []
        for result in tool_results:
            sentence = self._narrate_result(result, scene, character)
            if sentence:
                sentences.append(sentence)

        if not sentences and re.search(COMBAT_PATTERN, player_action.lower()):
            sentences.append(prompts.NO_TARGET_NARRATION)

        if not sentences:
            rng = random.Random(seed)
            template = rng.choice(prompts.EXPLORE_NARRATION)
            sentences.append(
                template.format(
                    scene=scene.title or "an unfamiliar place",
                    mood=rng.choice(prompts.MOODS),
                )
            )

        return NarrationDraft(narration=" ".join(sentences), choices=self.choices_for(scene))

    def _narrate_result(self, result, scene: Scene, character: Character) -> str:
        if isinstance(result, CheckResult):
            key = "default"
            if result.context.startswith("skill_check_"):
                key = SKILL_NARRATION_KEYS.get(result.context.removeprefix("skill_check_"), "default")
            table = prompts.SUCCESS_NARRATION if result.success else prompts.FAILURE_NARRATION
            text = table[key]
            if result.critical_success:
                text = f"{text} {prompts.CRITICAL_SUCCESS_FLOURISH}"
            elif result.critical_failure:
                text = f"{text} {prompts.CRITICAL_FAILURE_FLOURISH}"
            return text

        if isinstance(result, CombatResult):
            target = _target_name(result.target_id, scene)
            weapon = character.attack.name
            if not result.hit:
                return prompts.ATTACK_MISS_NARRATION.format(target=target, weapon=weapon)
            template = prompts.ATTACK_CRITICAL_NARRATION if result.critical else prompts.ATTACK_HIT_NARRATION
            text = template.format(target=target, weapon=weapon, damage=result.damage.total)
            if "defeated" in result.status_effects:
                text = f"{text} {prompts.TARGET_DEFEATED_NARRATION.format(target=target)}"
            return text

        if isinstance(result, SavingThrowResult):
            template = prompts.SAVE_SUCCESS_NARRATION if result.saved else prompts.SAVE_FAILURE_NARRATION
            return template.format(effect="danger", damage=result.damage.total)

        if isinstance(result, InventoryResult):
            if not result.ok:
                return f"You can't manage that right now: {'; '.join(result.errors).lower()}."
            if result.items_added:
                return f"You stow the {', '.join(result.items_added)} safely in your pack."
            if result.gold_delta < 0:
                return f"You hand over {-result.gold_delta} gold."
            if result.resource_deltas:
                used = ", ".join(result.resource_deltas)
                return f"You make use of your {used}."
        return ""

    def choices_for(self, scene: Scene) -> list[str]:
        choices = []
        friendly = [npc for npc in scene.npcs if npc.disposition != "hostile" and not npc.defeated]
        hostile = [npc for npc in scene.npcs if npc.disposition == "hostile" and not npc.defeated]
        if hostile:
            choices.append(f"Attack the {hostile[0].name}")
        if friendly:
            choices.append(f"Talk to {friendly[0].name}")
        if scene.exits:
            choices.append(f"Go {scene.exits[0].direction}")
        for choice in prompts.BASE_CHOICES:
            if choice not in choices:
                choices.append(choice)
        return choices[: self.choice_count]


class OpenAINarrationGenerator:
    """Narration from a hosted LLM. Any failure surfaces as NarrationFailed."""

    def __init__(
        self,
        llm_client: LLMClient,
        choice_count: int = 3,
        min_words: int = 10,
        max_words: int = 120,
        temperature: float = 0.7,
        timeout: float = 20.0,
    ):
        self.llm_client = llm_client
        self.choice_count = choice_count
        self.min_words = min_words
        self.max_words = max_words
        self.temperature = temperature
        self.timeout = timeout

    def build_prompts(
        self,
        scene: Scene,
        character: Character,
        player_action: str,
        tool_results: list,
        age_rating: AgeRating,
        revision_feedback: list[str] | None = None,
    ) -> tuple[str, str]:
        system_prompt = prompts.NARRATION_SYSTEM_PROMPT.format(
            age_rating=AgeRating(age_rating).value,
            min_words=self.min_words,
            max_words=self.max_words,
            choice_count=self.choice_count,
        )
        facts = "\n".join(f"- {fact.description}" for fact in scene.active_facts()) or "- (none)"
        results = "\n".join(
            f"- {line}" for line in (describe_result(r, scene) for r in tool_results) if line
        ) or "- No dice were rolled."
        user_prompt = prompts.NARRATION_USER_PROMPT.format(
            scene_title=scene.title,
            scene_synopsis=scene.synopsis,
            facts=facts,
            character_name=character.name,
            hp_current=character.hp.current,
            hp_max=character.hp.max,
            player_action=player_action,
            results=results,
        )
        user_prompt += prompts.build_revision_guidance(revision_feedback or [])
        return system_prompt, user_prompt

    async def generate(
        self,
        scene: Scene,
        character: Character,
        player_action: str,
        tool_results: list,
        age_rating: AgeRating = AgeRating.TEEN,
        seed: int = 0,
        revision_feedback: list[str] | None = None,
    ) -> NarrationDraft:
        system_prompt, user_prompt = self.build_prompts(
            scene, character, player_action, tool_results, age_rating, revision_feedback
        )
        try:
            payload = await self.llm_client.call_json(
                system_prompt,
                user_prompt,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except (LLMCallFailed, InvalidLLMResponse) as e:
            logger.warning(f"LLM narration failed: {e}")
            raise NarrationFailed(str(e)) from e

        narration = payload.get("narration")
        choices = payload.get("choices", [])
        if not isinstance(narration, str) or not narration.strip():
            raise NarrationFailed("LLM response has no narration text")
        if not isinstance(choices, list) or not all(isinstance(c, str) for c in choices):
            raise NarrationFailed("LLM response choices must be a list of strings")

        return NarrationDraft(narration=narration.strip(), choices=choices[: self.choice_count])
