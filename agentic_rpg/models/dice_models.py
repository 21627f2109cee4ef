# ABOUTME: Pydantic models for seeded dice rolls, ability checks, attacks and saving throws.
# ABOUTME: All roll records are frozen and validate their own arithmetic invariants.

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class CheckOutcome(str, Enum):
    """Outcome of an ability check against a difficulty class"""
    SUCCESS = "success"
    FAIL = "fail"


class CriticalDamageRule(str, Enum):
    """How a critical hit's extra damage draw treats the flat modifier"""
    DICE_ONLY = "dice_only"  # Dice rolled twice, modifier counted once
    DICE_AND_MODIFIER = "dice_and_modifier"  # Whole damage spec rolled twice


class RollResult(BaseModel):
    """Result of one seeded roll.

    `rolls` holds the dice that count toward the total. For advantage and
    disadvantage the discarded d20 is kept in `dropped` so both draws stay
    on the record.
    """

    rolls: tuple[int, ...] = Field(
        min_length=1,
        description="Kept die faces in draw order"
    )
    dropped: tuple[int, ...] = Field(
        default=(),
        description="Die faces drawn but discarded (advantage/disadvantage)"
    )
    modifier: int = 0
    total: int
    seed: int
    notation: str = Field(
        default="1d20",
        description="Dice notation that produced this roll"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_total(self):
        """Total must equal the kept dice plus the modifier"""
        expected = sum(self.rolls) + self.modifier
        if self.total != expected:
            raise ValueError(
                f"total ({self.total}) must equal sum(rolls) + modifier ({expected})"
            )
        return self

    @property
    def natural(self) -> int:
        """First kept die face, before modifiers"""
        return self.rolls[0]

    @property
    def draws(self) -> tuple[int, ...]:
        """Every face drawn, kept and dropped"""
        return self.rolls + self.dropped


class CheckResult(RollResult):
    """Ability check: a d20 roll compared to a difficulty class"""

    kind: Literal["check"] = "check"
    ability: str
    proficient: bool = False
    ability_modifier: int = 0
    proficiency_bonus: int = 0
    dc: int
    outcome: CheckOutcome
    critical_success: bool = False
    critical_failure: bool = False
    advantage: bool = False
    disadvantage: bool = False
    context: str = ""

    @model_validator(mode="after")
    def validate_outcome(self):
        """Outcome must agree with total >= dc"""
        expected = CheckOutcome.SUCCESS if self.total >= self.dc else CheckOutcome.FAIL
        if self.outcome != expected:
            raise ValueError(
                f"outcome ({self.outcome.value}) inconsistent with "
                f"total {self.total} vs dc {self.dc}"
            )
        return self

    @property
    def success(self) -> bool:
        return self.outcome == CheckOutcome.SUCCESS


class DamageRoll(BaseModel):
    """Damage dealt by a hit or a failed save"""

    rolls: tuple[int, ...] = ()
    modifier: int = 0
    total: int = Field(ge=0, description="Damage is never negative")
    critical: bool = False
    damage_type: str = "physical"

    model_config = {"frozen": True}


class CombatResult(BaseModel):
    """Attack resolution. The engine never mutates the target; callers apply it."""

    kind: Literal["combat"] = "combat"
    hit: bool
    to_hit: RollResult
    target_ac: int
    damage: DamageRoll | None = None
    status_effects: frozenset[str] = frozenset()
    target_id: str | None = None
    target_hp_after: int | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_damage_presence(self):
        """Damage is present exactly when the attack hit"""
        if self.hit != (self.damage is not None):
            raise ValueError("damage must be present iff hit is true")
        return self

    @property
    def critical(self) -> bool:
        return "critical" in self.status_effects

    @property
    def to_hit_roll(self) -> int:
        return self.to_hit.natural


class SavingThrowResult(BaseModel):
    """Effect that targets a saving throw (spell, trap, breath weapon)"""

    kind: Literal["saving_throw"] = "saving_throw"
    save: RollResult
    dc: int
    saved: bool
    damage: DamageRoll
    half_on_save: bool = True
    status_effects: frozenset[str] = frozenset()
    target_id: str | None = None
    target_hp_after: int | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_saved(self):
        if self.saved != (self.save.total >= self.dc):
            raise ValueError("saved must agree with save total vs dc")
        return self


class InitiativeEntry(BaseModel):
    """One combatant's place in the initiative order"""

    actor: str
    roll: int = Field(ge=1, le=20)
    modifier: int = 0
    initiative: int

    model_config = {"frozen": True}
