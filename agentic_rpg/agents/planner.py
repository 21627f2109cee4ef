# ABOUTME: Reads free-text player input into a ParsedAction and builds the turn's ordered tool steps.
# ABOUTME: Steps copy every mechanical input (scores, bonuses, dice) and get seeds derived from the turn seed.

import re

from loguru import logger

from agentic_rpg.config import prompts
from agentic_rpg.models.entities import ABILITIES, Character, Scene, ability_modifier
from agentic_rpg.models.plan import (
    ActionType,
    AttackStep,
    CheckStep,
    ImageRequestStep,
    InventoryUpdateStep,
    ParsedAction,
    Plan,
    SavingThrowStep,
    SkillCheckStep,
    WorldUpdateStep,
)
from agentic_rpg.tools.rng import step_seed
from agentic_rpg.tools.rules import difficulty_class

# Checked in order; the first match wins
SKILL_PATTERNS = {
    "Stealth": r"\b(?:sneak|hide|stealth)\b",
    "Sleight of Hand": r"\b(?:pick\s+(?:the\s+)?lock|lockpick|unlock)\b",
    "Athletics": r"\b(?:climb|scale)\b",
    "Persuasion": r"\b(?:persuade|convince|talk)\b",
    "Deception": r"\b(?:lie|deceive|bluff)\b",
    "Intimidation": r"\b(?:intimidate|threaten)\b",
    "Investigation": r"\b(?:search|investigate|examine)\b",
    "Perception": r"\b(?:look|listen|perceive|notice)\b",
}

ABILITY_NAMES = {
    "strength": "STR",
    "dexterity": "DEX",
    "constitution": "CON",
    "intelligence": "INT",
    "wisdom": "WIS",
    "charisma": "CHA",
    **{ability.lower(): ability for ability in ABILITIES},
}

ABILITY_ROLL_PATTERN = (
    r"\b(strength|dexterity|constitution|intelligence|wisdom|charisma|str|dex|con|int|wis|cha)"
    r"\s+(check|save|saving throw)\b"
)
COMBAT_PATTERN = r"\b(?:attack|fight|strike|hit|shoot|stab|punch)\b"
HAZARD_PATTERN = r"\b(?:jump|leap)\b"
TAKE_PATTERN = r"\b(?:take|grab|pick up)\s+(.+)"
BUY_PATTERN = r"\bbuy\s+(.+?)\s+for\s+(\d+)\s+gold\b"
TORCH_PATTERN = r"\b(?:light|use)\s+(?:a\s+|my\s+|the\s+)?torch\b"
OPEN_PATTERN = r"\bopen\s+(?:the\s+)?(door|chest|gate|window|hatch)\b"
MOVE_PATTERN = r"\b(?:go|head|walk|move|travel)\s+(north|south|east|west|up|down)\b"
REST_PATTERN = r"\b(?:rest|sleep|camp)\b"

ARTICLES = {"the", "a", "an", "some", "my"}
PHRASE_STOP_WORDS = {"and", "from", "off", "with", "then", "to", "into", "for"}

REST_HOURS = 8
HAZARD_DAMAGE = "1d6"


def _noun_phrase(text: str, max_words: int = 3) -> str:
    """Leading noun phrase: 'the old key from the table' -> 'old key'"""
    words = re.split(r"\s+", re.split(r"[.,!?;]", text, maxsplit=1)[0].strip())
    phrase = []
    for word in words:
        if not word or word in PHRASE_STOP_WORDS:
            break
        if not phrase and word in ARTICLES:
            continue
        phrase.append(word)
        if len(phrase) == max_words:
            break
    return " ".join(phrase)


class ActionParser:
    """Keyword-based reading of player input"""

    def determine_dc(self, text: str, base: str = "Moderate") -> int:
        if "carefully" in text or "slowly" in text:
            return difficulty_class("Easy")
        if "quickly" in text or "rush" in text:
            return difficulty_class("Hard")
        return difficulty_class(base)

    def parse(self, player_input: str, scene: Scene, character: Character) -> ParsedAction:
        text = player_input.strip().lower()
        action = ParsedAction(text=player_input.strip())

        action.advantage = "with advantage" in text
        action.disadvantage = "with disadvantage" in text or any(
            condition.type == "poisoned" for condition in character.conditions
        )

        ability_roll = re.search(ABILITY_ROLL_PATTERN, text)
        if ability_roll:
            action.ability = ABILITY_NAMES[ability_roll.group(1)]
            action.action_type = (
                ActionType.ABILITY_CHECK if ability_roll.group(2) == "check" else ActionType.SAVING_THROW
            )
            action.dc = self.determine_dc(text)
        elif re.search(COMBAT_PATTERN, text):
            action.action_type = ActionType.COMBAT
            action.target_id = self._find_target(text, scene)
        elif re.search(HAZARD_PATTERN, text):
            action.action_type = ActionType.HAZARD
            action.ability = "DEX"
            action.dc = self.determine_dc(text, base="Routine")
        else:
            for skill, pattern in SKILL_PATTERNS.items():
                if re.search(pattern, text):
                    action.action_type = ActionType.SKILL_CHECK
                    action.skill = skill
                    action.dc = self.determine_dc(text)
                    break

        buy = re.search(BUY_PATTERN, text)
        if buy:
            item = _noun_phrase(buy.group(1))
            if item:
                action.items_take.append(item)
            action.gold_delta = -int(buy.group(2))
        else:
            take = re.search(TAKE_PATTERN, text)
            if take:
                item = _noun_phrase(take.group(1))
                if item:
                    action.items_take.append(item)

        if re.search(TORCH_PATTERN, text):
            action.resource_deltas["torches"] = -1

        opened = re.search(OPEN_PATTERN, text)
        if opened:
            action.world_flags[f"{opened.group(1)}_open"] = True

        move = re.search(MOVE_PATTERN, text)
        if move:
            exit_ = next((e for e in scene.exits if e.direction == move.group(1)), None)
            if exit_ is not None and exit_.target_scene_id:
                action.moves_to = exit_.target_scene_id

        if re.search(REST_PATTERN, text):
            action.time_advance = REST_HOURS

        return action

    @staticmethod
    def _find_target(text: str, scene: Scene) -> str | None:
        """Named NPC if mentioned, else the first hostile NPC still standing"""
        standing = [npc for npc in scene.npcs if not npc.defeated]
        for npc in standing:
            if npc.name.lower() in text or npc.id.replace("_", " ") in text:
                return npc.id
        for npc in standing:
            if npc.disposition == "hostile":
                return npc.id
        return None


class Planner:
    """
    Builds a Plan from player input.

    Planning is deterministic: the same input, scene, character and turn seed
    always produce the same steps with the same seeds, so a revision re-plan
    never re-rolls the dice.
    """

    def __init__(
        self,
        parser: ActionParser | None = None,
        images_enabled: bool = True,
        image_size: str = "512x512",
    ):
        self.parser = parser or ActionParser()
        self.images_enabled = images_enabled
        self.image_size = image_size

    def create_plan(
        self,
        player_input: str,
        scene: Scene,
        character: Character,
        turn_seed: int,
        attempt: int = 1,
        revision_feedback: list[str] | None = None,
        moderation_reason: str | None = None,
        images_enabled: bool = True,
    ) -> Plan:
        """
        Build the plan for one turn attempt.

        Args:
            player_input: Raw player text
            scene: Scene the action happens in
            character: Acting character (copied into steps, never mutated)
            turn_seed: Base seed for this turn
            attempt: 1 for the first attempt, +1 per revision
            revision_feedback: Validation errors from the rejected attempt
            moderation_reason: If set, the input was refused and no tools run
            images_enabled: Session-level switch for scene images

        Returns:
            Plan with ordered, seeded steps
        """
        if moderation_reason:
            action = ParsedAction(text="", moderated=moderation_reason)
            return Plan(action=action, steps=[], seed=turn_seed, attempt=attempt,
                        revision_feedback=list(revision_feedback or []))

        action = self.parser.parse(player_input, scene, character)
        steps = []

        def next_seed() -> int:
            return step_seed(turn_seed, len(steps))

        if action.action_type == ActionType.SKILL_CHECK:
            steps.append(SkillCheckStep(
                seed=next_seed(),
                abilities=dict(character.abilities),
                skill=action.skill,
                proficiencies=list(character.proficiencies),
                proficiency_bonus=character.proficiency_bonus,
                dc=action.dc,
                advantage=action.advantage,
                disadvantage=action.disadvantage,
            ))
        elif action.action_type in (ActionType.ABILITY_CHECK, ActionType.SAVING_THROW):
            is_save = action.action_type == ActionType.SAVING_THROW
            steps.append(CheckStep(
                seed=next_seed(),
                abilities=dict(character.abilities),
                ability=action.ability,
                proficient=is_save and action.ability in character.saving_throw_proficiencies,
                proficiency_bonus=character.proficiency_bonus,
                dc=action.dc,
                advantage=action.advantage,
                disadvantage=action.disadvantage,
                context="saving_throw" if is_save else "ability_check",
            ))
        elif action.action_type == ActionType.HAZARD:
            save_modifier = ability_modifier(character.abilities[action.ability])
            if action.ability in character.saving_throw_proficiencies:
                save_modifier += character.proficiency_bonus
            steps.append(SavingThrowStep(
                seed=next_seed(),
                target_id=character.id,
                effect="fall",
                save_modifier=save_modifier,
                dc=action.dc,
                damage_spec=HAZARD_DAMAGE,
                damage_type="bludgeoning",
                target_hp=character.hp.current,
            ))
        elif action.action_type == ActionType.COMBAT and action.target_id:
            target = scene.get_npc(action.target_id)
            steps.append(AttackStep(
                seed=next_seed(),
                attacker_id=character.id,
                target_id=target.id,
                to_hit_modifier=character.attack_modifier(),
                damage_spec=character.attack.damage,
                damage_type=character.attack.damage_type,
                target_ac=target.armor_class,
                target_hp=target.hp.current if target.hp else None,
            ))

        if action.world_flags:
            steps.append(WorldUpdateStep(seed=next_seed(), scene_id=scene.id, flags=action.world_flags))

        if action.items_take or action.gold_delta or action.resource_deltas:
            steps.append(InventoryUpdateStep(
                seed=next_seed(),
                gold_delta=action.gold_delta,
                items_add=list(action.items_take),
                resource_deltas=dict(action.resource_deltas),
            ))

        if self.images_enabled and images_enabled:
            steps.append(ImageRequestStep(
                seed=next_seed(),
                scene_id=scene.id,
                prompt=self.image_prompt(scene),
                size=self.image_size,
            ))

        plan = Plan(
            action=action,
            steps=steps,
            seed=turn_seed,
            attempt=attempt,
            revision_feedback=list(revision_feedback or []),
        )
        logger.debug(
            f"Plan attempt {attempt}: {action.action_type.value} -> "
            f"{[step.tool for step in steps]}"
        )
        return plan

    @staticmethod
    def image_prompt(scene: Scene) -> str:
        facts = [fact.description for fact in scene.active_facts()[:2]]
        return prompts.IMAGE_PROMPT_TEMPLATE.format(
            subjects=", ".join(scene.tags) or "fantasy elements",
            setting=scene.title or "mysterious location",
            details=", ".join(facts) or "atmospheric lighting",
        )
