# ABOUTME: Ability checks, skill checks and saving throws resolved as d20 + modifiers vs a DC.
# ABOUTME: Handles advantage/disadvantage selection and natural 20/1 criticals; never mutates actors.

from loguru import logger

from agentic_rpg.models.dice_models import CheckOutcome, CheckResult
from agentic_rpg.models.entities import (
    ABILITIES,
    ability_modifier,
    proficiency_bonus_for_level,
)
from agentic_rpg.tools.exceptions import InvalidAbility, UnknownSkill
from agentic_rpg.tools.rng import RNGEngine

SKILL_ABILITIES: dict[str, str] = {
    "Athletics": "STR",
    "Acrobatics": "DEX",
    "Sleight of Hand": "DEX",
    "Stealth": "DEX",
    "Arcana": "INT",
    "History": "INT",
    "Investigation": "INT",
    "Nature": "INT",
    "Religion": "INT",
    "Animal Handling": "WIS",
    "Insight": "WIS",
    "Medicine": "WIS",
    "Perception": "WIS",
    "Survival": "WIS",
    "Deception": "CHA",
    "Intimidation": "CHA",
    "Performance": "CHA",
    "Persuasion": "CHA",
}

DIFFICULTY_CLASSES: dict[str, int] = {
    "Trivial": 5,
    "Easy": 10,
    "Routine": 12,
    "Moderate": 15,
    "Hard": 18,
    "Very Hard": 20,
    "Extreme": 25,
}

DEFAULT_DC = 15


def difficulty_class(label: str) -> int:
    """Map a difficulty label ("Easy", "Hard", ...) to a DC; unknown labels are Moderate"""
    return DIFFICULTY_CLASSES.get(label, DEFAULT_DC)


def skill_ability(skill: str) -> str:
    """
    Ability a skill keys off.

    Raises:
        UnknownSkill: If skill is not one of the 18 standard skills
    """
    try:
        return SKILL_ABILITIES[skill]
    except KeyError:
        raise UnknownSkill(f"Unknown skill: '{skill}'") from None


class RulesEngine:
    """d20 check resolution on top of RNGEngine"""

    def __init__(self, rng: RNGEngine | None = None):
        self.rng = rng or RNGEngine()

    # Re-exported so callers holding an engine don't need the module helpers
    ability_modifier = staticmethod(ability_modifier)
    proficiency_bonus_for_level = staticmethod(proficiency_bonus_for_level)
    difficulty_class = staticmethod(difficulty_class)

    def check(
        self,
        seed: int,
        abilities: dict[str, int],
        ability: str,
        proficient: bool = False,
        proficiency_bonus: int = 0,
        dc: int = DEFAULT_DC,
        advantage: bool = False,
        disadvantage: bool = False,
        context: str = "",
    ) -> CheckResult:
        """
        Resolve an ability check.

        Modifier is floor((score - 10) / 2), plus the proficiency bonus when
        proficient. Advantage and disadvantage cancel out when both are set.

        Args:
            seed: Deterministic seed for the d20 draw(s)
            abilities: Actor's ability scores keyed by STR/DEX/CON/INT/WIS/CHA
            ability: Ability being tested
            proficient: Whether the proficiency bonus applies
            proficiency_bonus: Actor's proficiency bonus
            dc: Difficulty class to meet or beat
            advantage: Roll two d20s and keep the higher
            disadvantage: Roll two d20s and keep the lower
            context: Free-text label carried into the result

        Returns:
            CheckResult with outcome and critical flags

        Raises:
            InvalidAbility: If ability is unknown or missing from abilities
        """
        if ability not in ABILITIES or ability not in abilities:
            raise InvalidAbility(
                f"Invalid ability: '{ability}'. "
                f"Must be one of: {', '.join(ABILITIES)}"
            )

        ability_mod = ability_modifier(abilities[ability])
        applied_bonus = proficiency_bonus if proficient else 0
        total_mod = ability_mod + applied_bonus

        if advantage and not disadvantage:
            roll = self.rng.advantage(seed, total_mod)
        elif disadvantage and not advantage:
            roll = self.rng.disadvantage(seed, total_mod)
        else:
            roll = self.rng.d20(seed, total_mod)

        outcome = CheckOutcome.SUCCESS if roll.total >= dc else CheckOutcome.FAIL

        result = CheckResult(
            rolls=roll.rolls,
            dropped=roll.dropped,
            modifier=roll.modifier,
            total=roll.total,
            seed=seed,
            notation=roll.notation,
            ability=ability,
            proficient=proficient,
            ability_modifier=ability_mod,
            proficiency_bonus=applied_bonus,
            dc=dc,
            outcome=outcome,
            critical_success=roll.natural == 20,
            critical_failure=roll.natural == 1,
            advantage=advantage,
            disadvantage=disadvantage,
            context=context,
        )

        logger.debug(
            f"Check {ability} dc={dc}: natural={roll.natural} total={roll.total} "
            f"-> {outcome.value}"
        )
        return result

    def skill_check(
        self,
        seed: int,
        abilities: dict[str, int],
        skill: str,
        proficiencies: list[str] | None = None,
        proficiency_bonus: int = 0,
        dc: int = DEFAULT_DC,
        advantage: bool = False,
        disadvantage: bool = False,
    ) -> CheckResult:
        """Check using the skill's ability; proficient if the skill is in `proficiencies`"""
        ability = skill_ability(skill)
        proficient = skill in (proficiencies or [])
        return self.check(
            seed,
            abilities,
            ability,
            proficient=proficient,
            proficiency_bonus=proficiency_bonus,
            dc=dc,
            advantage=advantage,
            disadvantage=disadvantage,
            context=f"skill_check_{skill.lower().replace(' ', '_')}",
        )

    def saving_throw(
        self,
        seed: int,
        abilities: dict[str, int],
        ability: str,
        save_proficiencies: list[str] | None = None,
        proficiency_bonus: int = 0,
        dc: int = DEFAULT_DC,
        advantage: bool = False,
        disadvantage: bool = False,
    ) -> CheckResult:
        """Saving throw: an ability check using saving-throw proficiencies"""
        return self.check(
            seed,
            abilities,
            ability,
            proficient=ability in (save_proficiencies or []),
            proficiency_bonus=proficiency_bonus,
            dc=dc,
            advantage=advantage,
            disadvantage=disadvantage,
            context="saving_throw",
        )
