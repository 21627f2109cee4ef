# ABOUTME: Attack rolls, damage, critical hits, saving-throw effects, initiative and conditions.
# ABOUTME: Side-effect free: results describe what happened and callers apply them to targets.

from loguru import logger

from agentic_rpg.models.dice_models import (
    CombatResult,
    CriticalDamageRule,
    DamageRoll,
    InitiativeEntry,
    SavingThrowResult,
)
from agentic_rpg.models.entities import Condition
from agentic_rpg.tools.rng import RNGEngine, parse_dice_notation

CRITICAL_TAG = "critical"
DEFEATED_TAG = "defeated"


class CombatEngine:
    """
    Resolves combat mechanics with explicit seeds.

    An attack uses three derived seeds: `seed` for the to-hit d20,
    `seed + 1` for damage and `seed + 2` for the extra critical draw.
    Replaying the same seed reproduces the same attack.
    """

    def __init__(
        self,
        rng: RNGEngine | None = None,
        crit_damage_rule: CriticalDamageRule = CriticalDamageRule.DICE_ONLY,
    ):
        self.rng = rng or RNGEngine()
        self.crit_damage_rule = CriticalDamageRule(crit_damage_rule)

    def resolve_attack(
        self,
        seed: int,
        to_hit_modifier: int,
        damage_spec: str,
        target_ac: int,
        target_hp: int | None = None,
        damage_type: str = "physical",
        target_id: str | None = None,
    ) -> CombatResult:
        """
        Resolve one attack.

        Hit iff d20(seed) + to_hit_modifier >= target_ac. A natural 20 adds a
        second damage draw at seed + 2 and tags the result `critical`. When
        target_hp is given and the damage would bring it to 0 or below, the
        result is tagged `defeated`.

        Raises:
            InvalidDiceSpec: If damage_spec is malformed (checked even on a miss)
        """
        parse_dice_notation(damage_spec)

        to_hit = self.rng.d20(seed, to_hit_modifier)
        hit = to_hit.total >= target_ac

        if not hit:
            logger.debug(f"Attack missed: {to_hit.total} vs AC {target_ac}")
            return CombatResult(
                hit=False,
                to_hit=to_hit,
                target_ac=target_ac,
                target_id=target_id,
                target_hp_after=target_hp,
            )

        status: set[str] = set()
        critical = to_hit.natural == 20
        damage = self._roll_damage(seed, damage_spec, damage_type, critical)
        if critical:
            status.add(CRITICAL_TAG)

        hp_after = None
        if target_hp is not None:
            hp_after = max(0, target_hp - damage.total)
            if target_hp - damage.total <= 0:
                status.add(DEFEATED_TAG)

        logger.debug(
            f"Attack hit: {to_hit.total} vs AC {target_ac}, "
            f"damage={damage.total} critical={critical}"
        )
        return CombatResult(
            hit=True,
            to_hit=to_hit,
            target_ac=target_ac,
            damage=damage,
            status_effects=frozenset(status),
            target_id=target_id,
            target_hp_after=hp_after,
        )

    def _roll_damage(
        self,
        seed: int,
        damage_spec: str,
        damage_type: str,
        critical: bool,
    ) -> DamageRoll:
        base = self.rng.roll(seed + 1, damage_spec)
        rolls = base.rolls
        modifier = base.modifier

        if critical:
            extra = self.rng.roll(seed + 2, damage_spec)
            rolls = rolls + extra.rolls
            if self.crit_damage_rule == CriticalDamageRule.DICE_AND_MODIFIER:
                modifier += extra.modifier

        return DamageRoll(
            rolls=rolls,
            modifier=modifier,
            total=max(0, sum(rolls) + modifier),
            critical=critical,
            damage_type=damage_type,
        )

    def resolve_saving_throw_effect(
        self,
        seed: int,
        save_modifier: int,
        dc: int,
        damage_spec: str,
        half_on_save: bool = True,
        target_hp: int | None = None,
        damage_type: str = "physical",
        target_id: str | None = None,
        condition: str | None = None,
    ) -> SavingThrowResult:
        """
        Resolve an effect the target saves against (trap, spell, breath).

        The save is d20(seed) + save_modifier vs dc; damage is rolled at
        seed + 1. A failed save takes full damage. A successful save takes
        floor(full / 2) when half_on_save, otherwise none. A failed save also
        applies `condition` as a status tag when one is given.
        """
        parse_dice_notation(damage_spec)

        save = self.rng.d20(seed, save_modifier)
        saved = save.total >= dc

        full = self.rng.roll(seed + 1, damage_spec)
        full_total = max(0, full.total)
        if not saved:
            dealt = full_total
        elif half_on_save:
            dealt = full_total // 2
        else:
            dealt = 0

        status: set[str] = set()
        if condition and not saved:
            status.add(condition)

        hp_after = None
        if target_hp is not None:
            hp_after = max(0, target_hp - dealt)
            if target_hp - dealt <= 0:
                status.add(DEFEATED_TAG)

        return SavingThrowResult(
            save=save,
            dc=dc,
            saved=saved,
            damage=DamageRoll(
                rolls=full.rolls,
                modifier=full.modifier,
                total=dealt,
                damage_type=damage_type,
            ),
            half_on_save=half_on_save,
            status_effects=frozenset(status),
            target_id=target_id,
            target_hp_after=hp_after,
        )

    def roll_initiative(
        self,
        seed: int,
        combatants: list[tuple[str, int]],
    ) -> list[InitiativeEntry]:
        """
        Roll initiative for (actor_id, dex_modifier) pairs.

        Each actor rolls at seed + index. The returned order is highest
        initiative first; ties keep the input order.
        """
        entries = []
        for index, (actor, modifier) in enumerate(combatants):
            roll = self.rng.d20(seed + index, modifier)
            entries.append(
                InitiativeEntry(
                    actor=actor,
                    roll=roll.natural,
                    modifier=modifier,
                    initiative=roll.total,
                )
            )
        return sorted(entries, key=lambda entry: entry.initiative, reverse=True)

    @staticmethod
    def apply_condition(
        conditions: list[Condition],
        condition: str,
        duration: int | None = None,
    ) -> list[Condition]:
        """Return a new condition list with `condition` added or its duration extended"""
        updated = []
        found = False
        for existing in conditions:
            if existing.type != condition:
                updated.append(existing)
                continue
            found = True
            if duration is not None and existing.duration is not None:
                updated.append(existing.model_copy(update={"duration": max(existing.duration, duration)}))
            else:
                updated.append(existing)
        if not found:
            updated.append(Condition(type=condition, duration=duration))
        return updated

    @staticmethod
    def remove_condition(conditions: list[Condition], condition: str) -> list[Condition]:
        return [existing for existing in conditions if existing.type != condition]
