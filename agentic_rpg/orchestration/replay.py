# ABOUTME: Re-executes the mechanical tool calls recorded in a turn trace and compares the results.
# ABOUTME: A clean replay shows that every recorded roll is reproducible from its stored seed.

from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import TypeAdapter

from agentic_rpg.models.plan import MECHANICAL_TOOLS, Step
from agentic_rpg.models.tool_results import ToolResult
from agentic_rpg.models.trace import Trace
from agentic_rpg.tools.combat import CombatEngine
from agentic_rpg.tools.executor import ToolExecutor
from agentic_rpg.tools.rules import RulesEngine
from agentic_rpg.tools.world import WorldStore

_STEP_ADAPTER = TypeAdapter(Step)
_RESULT_ADAPTER = TypeAdapter(ToolResult)


@dataclass
class ReplayMismatch:
    index: int
    tool: str
    recorded: dict[str, Any]
    replayed: dict[str, Any]


@dataclass
class ReplayReport:
    replayed: int = 0
    skipped: int = 0
    mismatches: list[ReplayMismatch] = field(default_factory=list)

    @property
    def reproducible(self) -> bool:
        return not self.mismatches


async def replay_trace(trace: Trace, rules: RulesEngine, combat: CombatEngine) -> ReplayReport:
    """
    Replay every check, attack and saving throw in a trace.

    World, inventory and image calls are skipped; they depend on state
    outside the step. Results are compared as models, so tag sets match
    regardless of order.
    """
    executor = ToolExecutor(rules, combat, WorldStore())
    report = ReplayReport()

    for index, call in enumerate(trace.tool_calls):
        if call.tool not in MECHANICAL_TOOLS:
            report.skipped += 1
            continue

        step = _STEP_ADAPTER.validate_python(call.step)
        result = await executor.execute(step, step_index=index)
        report.replayed += 1

        if _RESULT_ADAPTER.validate_python(call.result) != result:
            report.mismatches.append(ReplayMismatch(
                index=index,
                tool=call.tool,
                recorded=call.result,
                replayed=result.model_dump(mode="json"),
            ))

    if report.mismatches:
        logger.warning(
            f"Replay of session {trace.session_id} turn {trace.turn}: "
            f"{len(report.mismatches)} mismatch(es) in {report.replayed} call(s)"
        )
    return report
