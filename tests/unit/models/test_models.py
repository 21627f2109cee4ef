# ABOUTME: Unit tests for the pydantic models: roll arithmetic, outcome consistency and job lifecycle.
# ABOUTME: Also checks the tagged unions resolve plan steps and tool results by their literal tag.

import pytest
from pydantic import TypeAdapter, ValidationError

from agentic_rpg.models.dice_models import (
    CheckOutcome,
    CheckResult,
    CombatResult,
    DamageRoll,
    RollResult,
    SavingThrowResult,
)
from agentic_rpg.models.entities import (
    Character,
    Session,
    ability_modifier,
    proficiency_bonus_for_level,
)
from agentic_rpg.models.game_state import ActionLogEntry, StateUpdates, ValidationVerdict
from agentic_rpg.models.image_job import ImageJob, ImageMode, JobStatus
from agentic_rpg.models.plan import AttackStep, ParsedAction, Plan, Step, WorldUpdateStep
from agentic_rpg.models.tool_results import ToolError, ToolResult
from agentic_rpg.models.trace import Trace


def make_job(**overrides) -> ImageJob:
    fields = dict(
        id="img_1", scene_id="tavern_start", prompt="a tavern", sanitized_prompt="a tavern",
        mode=ImageMode.PREVIEW, seed=7, size="512x512", created_at=0.0,
    )
    fields.update(overrides)
    return ImageJob(**fields)


class TestRollModels:
    """Test suite for roll arithmetic invariants"""

    def test_total_must_match(self):
        with pytest.raises(ValidationError, match="must equal"):
            RollResult(rolls=(10,), modifier=2, total=13, seed=1)

    def test_draws_include_dropped(self):
        roll = RollResult(rolls=(17,), dropped=(4,), modifier=1, total=18, seed=1)
        assert roll.natural == 17
        assert roll.draws == (17, 4)

    def test_rolls_cannot_be_empty(self):
        with pytest.raises(ValidationError):
            RollResult(rolls=(), total=0, seed=1)

    def test_roll_is_frozen(self):
        roll = RollResult(rolls=(5,), total=5, seed=1)
        with pytest.raises(ValidationError):
            roll.total = 6

    def test_check_outcome_must_agree_with_dc(self):
        with pytest.raises(ValidationError, match="inconsistent"):
            CheckResult(rolls=(12,), modifier=2, total=14, seed=1, ability="WIS",
                        dc=15, outcome=CheckOutcome.SUCCESS)

    def test_check_success_at_exact_dc(self):
        check = CheckResult(rolls=(13,), modifier=2, total=15, seed=1, ability="WIS",
                            dc=15, outcome=CheckOutcome.SUCCESS)
        assert check.success

    def test_combat_damage_present_iff_hit(self):
        to_hit = RollResult(rolls=(18,), modifier=4, total=22, seed=1)

        with pytest.raises(ValidationError, match="damage must be present"):
            CombatResult(hit=True, to_hit=to_hit, target_ac=11)
        with pytest.raises(ValidationError, match="damage must be present"):
            CombatResult(hit=False, to_hit=to_hit, target_ac=11,
                         damage=DamageRoll(rolls=(3,), total=3))

    def test_combat_critical_flag(self):
        result = CombatResult(
            hit=True,
            to_hit=RollResult(rolls=(20,), modifier=4, total=24, seed=1),
            target_ac=11,
            damage=DamageRoll(rolls=(3, 5), modifier=2, total=10, critical=True),
            status_effects=frozenset({"critical"}),
        )
        assert result.critical
        assert result.to_hit_roll == 20

    def test_damage_never_negative(self):
        with pytest.raises(ValidationError):
            DamageRoll(rolls=(1,), modifier=-3, total=-2)

    def test_saved_must_agree_with_total(self):
        with pytest.raises(ValidationError, match="saved"):
            SavingThrowResult(
                save=RollResult(rolls=(5,), modifier=1, total=6, seed=1),
                dc=12,
                saved=True,
                damage=DamageRoll(total=0),
            )


class TestEntities:
    """Test suite for character and session helpers"""

    @pytest.mark.parametrize("score,expected", [(1, -5), (9, -1), (10, 0), (11, 0), (15, 2), (20, 5)])
    def test_ability_modifier(self, score, expected):
        assert ability_modifier(score) == expected

    @pytest.mark.parametrize("level,expected", [(1, 2), (4, 2), (5, 3), (9, 4), (17, 6), (20, 6)])
    def test_proficiency_bonus(self, level, expected):
        assert proficiency_bonus_for_level(level) == expected

    def test_unknown_ability_rejected(self):
        with pytest.raises(ValidationError, match="Unknown ability keys"):
            Character(abilities={"STR": 10, "LCK": 12})

    def test_session_round_trips_as_json(self, character):
        session = Session(id="s-1", player_id="p-1", seed=42, character=character)
        restored = Session.model_validate_json(session.model_dump_json())
        assert restored == session


class TestImageJob:
    """Test suite for the image job lifecycle"""

    def test_forward_lifecycle(self):
        job = make_job()
        job.transition(JobStatus.GENERATING)
        job.transition(JobStatus.READY)

        assert job.status_history == [JobStatus.QUEUED, JobStatus.GENERATING, JobStatus.READY]
        assert job.status.terminal

    def test_retry_reentry_is_allowed(self):
        job = make_job()
        job.transition(JobStatus.GENERATING)
        job.transition(JobStatus.QUEUED)
        assert job.can_transition(JobStatus.GENERATING)

    @pytest.mark.parametrize("terminal", [JobStatus.READY, JobStatus.FAILED])
    def test_terminal_statuses_are_final(self, terminal):
        job = make_job()
        job.transition(JobStatus.GENERATING)
        job.transition(terminal)

        for status in JobStatus:
            with pytest.raises(ValueError, match="illegal status change"):
                job.transition(status)

    def test_queued_cannot_skip_to_ready(self):
        with pytest.raises(ValueError):
            make_job().transition(JobStatus.READY)


class TestTaggedUnions:
    """Test suite for discriminated unions"""

    def test_step_union(self):
        adapter = TypeAdapter(Step)
        step = adapter.validate_python({
            "tool": "combat.attack", "seed": 10, "attacker_id": "pc", "target_id": "rat",
            "to_hit_modifier": 4, "damage_spec": "1d6+2", "target_ac": 12,
        })
        assert isinstance(step, AttackStep)

        with pytest.raises(ValidationError):
            adapter.validate_python({"tool": "world.teleport", "seed": 1})

    def test_tool_result_union(self):
        result = TypeAdapter(ToolResult).validate_python(
            {"kind": "error", "tool": "combat.attack", "message": "no target"}
        )
        assert isinstance(result, ToolError)

    def test_action_log_union(self):
        entry = TypeAdapter(ActionLogEntry).validate_python({"type": "system", "message": "hi"})
        assert entry.message == "hi"

    def test_plan_requires_roll(self):
        plan = Plan(action=ParsedAction(text="open the door"), seed=1, steps=[
            WorldUpdateStep(seed=1, scene_id="tavern_start", flags={"door_open": True}),
        ])
        assert not plan.requires_roll

        plan.steps.append(AttackStep(seed=11, attacker_id="pc", target_id="rat", to_hit_modifier=4,
                                     damage_spec="1d4", target_ac=12))
        assert plan.requires_roll

    def test_plan_attempt_starts_at_one(self):
        with pytest.raises(ValidationError):
            Plan(action=ParsedAction(text="x"), seed=1, attempt=0)


class TestTurnModels:
    """Test suite for verdicts, state updates and traces"""

    def test_verdict_approval_must_match_errors(self):
        with pytest.raises(ValidationError):
            ValidationVerdict(approved=True, errors=["bad"])

    def test_verdict_from_findings_dedupes(self):
        verdict = ValidationVerdict.from_findings(["a", "b", "a"], ["w", "w"])
        assert not verdict.approved
        assert verdict.errors == ["a", "b"]
        assert verdict.warnings == ["w"]

    def test_state_updates_is_empty(self):
        assert StateUpdates().is_empty()
        assert not StateUpdates(gold_delta=-1).is_empty()

    def test_trace_records_seeds_with_tool_calls(self):
        trace = Trace(session_id="s", turn=1)
        trace.add_tool_call("rules.check", {"seed": 100, "dc": 10}, {"total": 12})
        trace.add_tool_call("inventory.update", {"gold_delta": 1}, {"ok": True})
        trace.add_output("plan", {"steps": 2})

        assert [record.seed for record in trace.tool_calls] == [100, None]
        assert [(s.operation, s.seed) for s in trace.rng_seeds] == [("rules.check", 100)]
        assert len(trace.outputs_of("plan")) == 1
