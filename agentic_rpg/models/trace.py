# ABOUTME: Append-only audit record of one turn: tool calls, seeds and intermediate outputs.
# ABOUTME: Stored tool calls keep their step and result so mechanics can be replayed from seeds.

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ToolCallRecord(BaseModel):
    tool: str
    step: dict[str, Any] = Field(description="Step arguments as planned, including seed")
    seed: int | None = None
    result: dict[str, Any]
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.now)
    attempt: int = 1


class SeedRecord(BaseModel):
    operation: str
    seed: int
    timestamp: datetime = Field(default_factory=datetime.now)


class TraceOutput(BaseModel):
    type: str = Field(description="plan, validation, error, recovery, render...")
    content: Any = None
    timestamp: datetime = Field(default_factory=datetime.now)


class Trace(BaseModel):
    """Turn audit trail. Entries are only ever appended."""

    session_id: str
    turn: int
    scene_id: str = ""
    player_input: str = ""
    turn_seed: int = 0
    started_at: datetime = Field(default_factory=datetime.now)
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    rng_seeds: list[SeedRecord] = Field(default_factory=list)
    outputs: list[TraceOutput] = Field(default_factory=list)

    def add_tool_call(
        self,
        tool: str,
        step: dict[str, Any],
        result: dict[str, Any],
        duration_ms: float = 0.0,
        attempt: int = 1,
    ) -> None:
        seed = step.get("seed")
        self.tool_calls.append(
            ToolCallRecord(
                tool=tool,
                step=step,
                seed=seed,
                result=result,
                duration_ms=duration_ms,
                attempt=attempt,
            )
        )
        if seed is not None:
            self.add_seed(tool, seed)

    def add_seed(self, operation: str, seed: int) -> None:
        self.rng_seeds.append(SeedRecord(operation=operation, seed=seed))

    def add_output(self, type: str, content: Any = None) -> None:
        self.outputs.append(TraceOutput(type=type, content=content))

    def outputs_of(self, type: str) -> list[TraceOutput]:
        return [output for output in self.outputs if output.type == type]
