"""Data models for the agentic RPG turn engine"""

from .dice_models import (
    CheckOutcome,
    CheckResult,
    CombatResult,
    CriticalDamageRule,
    DamageRoll,
    InitiativeEntry,
    RollResult,
    SavingThrowResult,
)
from .entities import (
    ABILITIES,
    NPC,
    AgeRating,
    AttackProfile,
    CanonicalFact,
    Character,
    Condition,
    Exit,
    HitPoints,
    Item,
    Location,
    Scene,
    Session,
    SessionSettings,
)
from .game_state import (
    ActionLogEntry,
    CheckLogEntry,
    CombatLogEntry,
    InventoryLogEntry,
    SavingThrowLogEntry,
    StateResult,
    StateUpdates,
    SystemLogEntry,
    TransitionRecord,
    TurnContext,
    TurnOutput,
    TurnRequest,
    TurnResponse,
    TurnState,
    ValidationVerdict,
)
from .image_job import (
    ImageJob,
    ImageJobTicket,
    ImageMode,
    ImageResult,
    JobStatus,
    JobStatusReport,
)
from .plan import (
    ActionType,
    AttackStep,
    CheckStep,
    ImageRequestStep,
    InventoryUpdateStep,
    ParsedAction,
    Plan,
    SavingThrowStep,
    SkillCheckStep,
    Step,
    WorldUpdateStep,
)
from .tool_results import (
    ImageJobHandle,
    InventoryResult,
    ToolError,
    ToolResult,
    WorldUpdateResult,
)
from .trace import Trace

__all__ = [
    # Dice models
    "RollResult",
    "CheckOutcome",
    "CheckResult",
    "CriticalDamageRule",
    "DamageRoll",
    "CombatResult",
    "SavingThrowResult",
    "InitiativeEntry",
    # Entities
    "ABILITIES",
    "AgeRating",
    "HitPoints",
    "Item",
    "Condition",
    "AttackProfile",
    "Character",
    "NPC",
    "CanonicalFact",
    "Exit",
    "Scene",
    "Location",
    "SessionSettings",
    "Session",
    # Plan models
    "ActionType",
    "ParsedAction",
    "CheckStep",
    "SkillCheckStep",
    "AttackStep",
    "SavingThrowStep",
    "WorldUpdateStep",
    "InventoryUpdateStep",
    "ImageRequestStep",
    "Step",
    "Plan",
    # Tool results
    "WorldUpdateResult",
    "InventoryResult",
    "ImageJobHandle",
    "ToolError",
    "ToolResult",
    # Turn state
    "TurnState",
    "TransitionRecord",
    "CheckLogEntry",
    "CombatLogEntry",
    "SavingThrowLogEntry",
    "InventoryLogEntry",
    "SystemLogEntry",
    "ActionLogEntry",
    "StateUpdates",
    "TurnOutput",
    "ValidationVerdict",
    "TurnRequest",
    "TurnResponse",
    "StateResult",
    "TurnContext",
    # Image jobs
    "JobStatus",
    "ImageMode",
    "ImageResult",
    "ImageJob",
    "ImageJobTicket",
    "JobStatusReport",
    # Trace
    "Trace",
]
