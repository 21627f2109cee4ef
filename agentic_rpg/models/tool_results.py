# ABOUTME: Tagged union of everything a plan step can return, discriminated by the `kind` literal.
# ABOUTME: Defines world, inventory, image-handle and error results alongside the dice results.

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from agentic_rpg.models.dice_models import CheckResult, CombatResult, SavingThrowResult


class WorldUpdateResult(BaseModel):
    """Scene flags written by a world.update step"""

    kind: Literal["world_update"] = "world_update"
    scene_id: str
    flags: dict[str, Any] = Field(default_factory=dict, description="Flags requested")
    changed: dict[str, Any] = Field(
        default_factory=dict,
        description="Subset of flags whose value actually changed"
    )

    model_config = {"frozen": True}


class InventoryResult(BaseModel):
    """Projected inventory change. Nothing is applied until the turn renders."""

    kind: Literal["inventory"] = "inventory"
    ok: bool = True
    gold_delta: int = 0
    gold_after: int = 0
    items_added: list[str] = Field(default_factory=list)
    items_removed: list[str] = Field(default_factory=list)
    resource_deltas: dict[str, int] = Field(default_factory=dict)
    resources_after: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class ImageJobHandle(BaseModel):
    """Image request staged by a plan; job_id is assigned once the pipeline accepts it"""

    kind: Literal["image_job"] = "image_job"
    job_id: str | None = None
    scene_id: str
    prompt: str
    mode: Literal["preview", "hq"] = "preview"
    seed: int
    size: str = "512x512"
    eta_seconds: int | None = None
    status: str = "pending"


class ToolError(BaseModel):
    """A step that failed; the turn continues without it"""

    kind: Literal["error"] = "error"
    tool: str
    message: str
    step_index: int | None = None

    model_config = {"frozen": True}


ToolResult = Annotated[
    Union[
        CheckResult,
        CombatResult,
        SavingThrowResult,
        WorldUpdateResult,
        InventoryResult,
        ImageJobHandle,
        ToolError,
    ],
    Field(discriminator="kind"),
]
