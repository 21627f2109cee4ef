# ABOUTME: Pydantic models for a turn plan: the parsed player action and its ordered tool steps.
# ABOUTME: Steps are a tagged union on `tool` and carry every input needed to replay them.

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class ActionType(str, Enum):
    """What kind of action the player input was read as"""
    NARRATIVE = "narrative"
    SKILL_CHECK = "skill_check"
    COMBAT = "combat"
    ABILITY_CHECK = "ability_check"
    SAVING_THROW = "saving_throw"
    HAZARD = "hazard"


class ParsedAction(BaseModel):
    """Structured reading of free-text player input"""

    text: str
    action_type: ActionType = ActionType.NARRATIVE
    skill: str | None = None
    ability: str | None = None
    dc: int | None = None
    advantage: bool = False
    disadvantage: bool = False
    target_id: str | None = None
    items_take: list[str] = Field(default_factory=list)
    resource_deltas: dict[str, int] = Field(default_factory=dict)
    gold_delta: int = 0
    world_flags: dict[str, Any] = Field(default_factory=dict)
    moves_to: str | None = None
    time_advance: int = 0
    moderated: str | None = Field(
        default=None,
        description="Reason the input was refused by content moderation"
    )


class CheckStep(BaseModel):
    tool: Literal["rules.check"] = "rules.check"
    seed: int
    abilities: dict[str, int]
    ability: str
    proficient: bool = False
    proficiency_bonus: int = 0
    dc: int
    advantage: bool = False
    disadvantage: bool = False
    context: str = ""


class SkillCheckStep(BaseModel):
    tool: Literal["rules.skill_check"] = "rules.skill_check"
    seed: int
    abilities: dict[str, int]
    skill: str
    proficiencies: list[str] = Field(default_factory=list)
    proficiency_bonus: int = 0
    dc: int
    advantage: bool = False
    disadvantage: bool = False


class AttackStep(BaseModel):
    tool: Literal["combat.attack"] = "combat.attack"
    seed: int
    attacker_id: str
    target_id: str
    to_hit_modifier: int
    damage_spec: str
    damage_type: str = "physical"
    target_ac: int
    target_hp: int | None = None


class SavingThrowStep(BaseModel):
    tool: Literal["combat.saving_throw"] = "combat.saving_throw"
    seed: int
    target_id: str
    effect: str = "hazard"
    save_modifier: int
    dc: int
    damage_spec: str
    damage_type: str = "physical"
    half_on_save: bool = True
    target_hp: int | None = None


class WorldUpdateStep(BaseModel):
    tool: Literal["world.update"] = "world.update"
    seed: int
    scene_id: str
    flags: dict[str, Any]


class InventoryUpdateStep(BaseModel):
    tool: Literal["inventory.update"] = "inventory.update"
    seed: int
    gold_delta: int = 0
    items_add: list[str] = Field(default_factory=list)
    items_remove: list[str] = Field(default_factory=list)
    resource_deltas: dict[str, int] = Field(default_factory=dict)


class ImageRequestStep(BaseModel):
    tool: Literal["images.request"] = "images.request"
    seed: int
    scene_id: str
    prompt: str
    mode: Literal["preview", "hq"] = "preview"
    size: str = "512x512"


Step = Annotated[
    Union[
        CheckStep,
        SkillCheckStep,
        AttackStep,
        SavingThrowStep,
        WorldUpdateStep,
        InventoryUpdateStep,
        ImageRequestStep,
    ],
    Field(discriminator="tool"),
]

MECHANICAL_TOOLS = frozenset({
    "rules.check",
    "rules.skill_check",
    "combat.attack",
    "combat.saving_throw",
})


class Plan(BaseModel):
    """Ordered steps for one turn attempt; rebuilt on every revision"""

    action: ParsedAction
    steps: list[Step] = Field(default_factory=list)
    seed: int
    attempt: int = Field(default=1, ge=1)
    revision_feedback: list[str] = Field(
        default_factory=list,
        description="Validation errors from the previous attempt"
    )

    @property
    def requires_roll(self) -> bool:
        return any(step.tool in MECHANICAL_TOOLS for step in self.steps)
