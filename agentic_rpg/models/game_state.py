# ABOUTME: Turn-processing models: the state enum, turn output, validation verdict and turn context.
# ABOUTME: Defines the turn boundary (TurnRequest/TurnResponse) and what state handlers return.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from agentic_rpg.models.entities import Character, Scene, Session
from agentic_rpg.models.plan import Plan
from agentic_rpg.models.tool_results import ImageJobHandle
from agentic_rpg.models.trace import Trace


class TurnState(str, Enum):
    """Turn-processing phases driven by TurnStateMachine"""
    IDLE = "idle"
    PLAN = "plan"
    TOOL_EXEC = "tool_exec"
    REDUCE = "reduce"
    SAFETY = "safety"
    RENDER = "render"
    AWAIT_INPUT = "await_input"
    RECOVER = "recover"


class TransitionRecord(BaseModel):
    """One entry in the state machine's history"""

    from_state: TurnState
    to_state: TurnState
    timestamp: datetime = Field(default_factory=datetime.now)
    context: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


# --- Action log -----------------------------------------------------------


class CheckLogEntry(BaseModel):
    type: Literal["check"] = "check"
    ability: str
    roll: int = Field(description="Natural d20 face that counted")
    modifier: int
    total: int
    dc: int
    outcome: str
    ability_modifier: int = 0
    proficiency_bonus: int = 0
    critical_success: bool = False
    critical_failure: bool = False
    context: str = ""


class CombatLogEntry(BaseModel):
    type: Literal["combat"] = "combat"
    target_id: str | None = None
    hit: bool
    to_hit_roll: int
    to_hit_modifier: int
    total: int
    target_ac: int
    damage_total: int | None = None
    critical: bool = False
    defeated: bool = False


class SavingThrowLogEntry(BaseModel):
    type: Literal["saving_throw"] = "saving_throw"
    target_id: str | None = None
    roll: int
    modifier: int
    total: int
    dc: int
    saved: bool
    damage_total: int = 0


class InventoryLogEntry(BaseModel):
    type: Literal["inventory"] = "inventory"
    gold_delta: int = 0
    items_added: list[str] = Field(default_factory=list)
    items_removed: list[str] = Field(default_factory=list)


class SystemLogEntry(BaseModel):
    type: Literal["system"] = "system"
    message: str


ActionLogEntry = Annotated[
    Union[CheckLogEntry, CombatLogEntry, SavingThrowLogEntry, InventoryLogEntry, SystemLogEntry],
    Field(discriminator="type"),
]


# --- Turn output ----------------------------------------------------------


class StateUpdates(BaseModel):
    """Changes a turn will apply to the session when it renders"""

    flags: dict[str, Any] = Field(default_factory=dict)
    gold_delta: int = 0
    items_add: list[str] = Field(default_factory=list)
    items_remove: list[str] = Field(default_factory=list)
    resource_deltas: dict[str, int] = Field(default_factory=dict)
    npc_hp: dict[str, int] = Field(
        default_factory=dict,
        description="NPC id -> hit points after this turn"
    )
    character_hp_delta: int = 0
    time_advance: int = Field(default=0, description="Hours of in-game time")
    move_to_scene: str | None = None

    def is_empty(self) -> bool:
        return self == StateUpdates()


class TurnOutput(BaseModel):
    """Proposed turn result, produced by Reduce and checked by Safety"""

    narration: str
    action_log: list[ActionLogEntry] = Field(default_factory=list)
    choices: list[str] = Field(default_factory=list)
    state_updates: StateUpdates = Field(default_factory=StateUpdates)
    image_request: ImageJobHandle | None = None
    is_fallback: bool = False


class ValidationVerdict(BaseModel):
    """Safety verdict. Errors block approval; warnings never do."""

    approved: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_approval(self):
        if self.approved != (not self.errors):
            raise ValueError("approved must be true exactly when there are no errors")
        return self

    @classmethod
    def from_findings(cls, errors: list[str], warnings: list[str]) -> "ValidationVerdict":
        """Build a verdict, dropping repeated messages while keeping order"""
        errors = list(dict.fromkeys(errors))
        warnings = list(dict.fromkeys(warnings))
        return cls(approved=not errors, errors=errors, warnings=warnings)


# --- Turn boundary --------------------------------------------------------


class TurnRequest(BaseModel):
    session_id: str
    player_id: str
    player_input: str
    scene_id: str | None = None


class TurnResponse(BaseModel):
    session_id: str
    scene_id: str
    narration: str
    action_log: list[ActionLogEntry] = Field(default_factory=list)
    choices: list[str] = Field(default_factory=list)
    state_updates: StateUpdates = Field(default_factory=StateUpdates)
    image_request: ImageJobHandle | None = None
    turn_count: int
    revisions: int = 0
    recovered: bool = False
    warnings: list[str] = Field(default_factory=list)


# --- Handler plumbing -----------------------------------------------------


@dataclass
class StateResult:
    """What a state handler asks the machine to do next"""
    next_state: TurnState
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnContext:
    """Mutable bag threaded through every state handler for one turn"""
    session: Session
    scene: Scene
    character: Character
    player_input: str
    turn_seed: int
    trace: Trace
    plan: Plan | None = None
    tool_results: list[Any] = field(default_factory=list)
    response: TurnOutput | None = None
    verdict: ValidationVerdict | None = None
    revision_count: int = 0
    errors: list[str] = field(default_factory=list)
    final_output: TurnOutput | None = None
    recovered: bool = False

    @property
    def turn_number(self) -> int:
        return self.session.turn_count + 1

    def snapshot(self) -> dict[str, Any]:
        """Small summary stored with each state transition"""
        return {
            "session_id": self.session.id,
            "turn": self.turn_number,
            "revision": self.revision_count,
            "plan_attempt": self.plan.attempt if self.plan else None,
            "errors": list(self.errors[-3:]),
        }
