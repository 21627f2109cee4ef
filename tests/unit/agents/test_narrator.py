# ABOUTME: Unit tests for the template narrator and the OpenAI-backed narration generator.
# ABOUTME: The template narrator must be deterministic; the LLM narrator must surface failures as NarrationFailed.

from unittest.mock import AsyncMock, MagicMock

import pytest

from agentic_rpg.agents.exceptions import InvalidLLMResponse, LLMCallFailed, NarrationFailed
from agentic_rpg.agents.narrator import OpenAINarrationGenerator, TemplateNarrator, describe_result
from agentic_rpg.config import prompts
from agentic_rpg.models.dice_models import (
    CheckOutcome,
    CheckResult,
    CombatResult,
    DamageRoll,
    RollResult,
)
from agentic_rpg.models.entities import AgeRating, Scene
from agentic_rpg.models.tool_results import InventoryResult, ToolError


def stealth_success(natural: int = 15) -> CheckResult:
    return CheckResult(
        rolls=(natural,), modifier=4, total=natural + 4, seed=1, ability="DEX",
        dc=15, outcome=CheckOutcome.SUCCESS, critical_success=natural == 20,
        context="skill_check_stealth",
    )


def killing_blow() -> CombatResult:
    return CombatResult(
        hit=True,
        to_hit=RollResult(rolls=(15,), modifier=4, total=19, seed=1),
        target_ac=11,
        damage=DamageRoll(rolls=(5,), modifier=2, total=7, damage_type="piercing"),
        status_effects=frozenset({"defeated"}),
        target_id="rowdy_patron",
        target_hp_after=0,
    )


class TestTemplateNarrator:
    """Test suite for TemplateNarrator"""

    def test_skill_check_uses_skill_table(self, template_narrator, tavern, character):
        draft = template_narrator.render(tavern, character, [stealth_success()])
        assert draft.narration == prompts.SUCCESS_NARRATION["stealth"]

    def test_critical_adds_flourish(self, template_narrator, tavern, character):
        draft = template_narrator.render(tavern, character, [stealth_success(natural=20)])
        assert draft.narration.endswith(prompts.CRITICAL_SUCCESS_FLOURISH)

    def test_defeating_blow(self, template_narrator, tavern, character):
        draft = template_narrator.render(tavern, character, [killing_blow()])
        assert "You strike Rowdy Patron with your shortsword, dealing 7 damage." in draft.narration
        assert "Rowdy Patron staggers and falls" in draft.narration

    def test_attack_with_nothing_to_fight(self, template_narrator, character):
        draft = template_narrator.render(Scene(id="empty"), character, [], player_action="I attack")
        assert draft.narration == prompts.NO_TARGET_NARRATION

    def test_exploration_is_seeded(self, template_narrator, tavern, character):
        first = template_narrator.render(tavern, character, [], seed=99, player_action="I wait")
        again = template_narrator.render(tavern, character, [], seed=99, player_action="I wait")
        assert first == again
        assert "The Crossed Swords Tavern" in first.narration

    def test_refused_inventory_change(self, template_narrator, tavern, character):
        result = InventoryResult(ok=False, errors=["Insufficient gold"])
        draft = template_narrator.render(tavern, character, [result])
        assert "insufficient gold" in draft.narration

    def test_tool_errors_are_skipped(self, template_narrator, tavern, character):
        error = ToolError(tool="rules.check", message="boom", step_index=0)
        draft = template_narrator.render(tavern, character, [error], seed=1, player_action="I wait")
        assert "boom" not in draft.narration

    def test_choices_reflect_scene(self, template_narrator, tavern):
        choices = template_narrator.choices_for(tavern)
        assert choices[:2] == ["Attack the Rowdy Patron", "Talk to Thorin"]
        assert len(choices) == 3

    def test_choices_fall_back_to_base(self):
        choices = TemplateNarrator(choice_count=2).choices_for(Scene(id="empty"))
        assert choices == prompts.BASE_CHOICES[:2]

    @pytest.mark.asyncio
    async def test_generate_matches_render(self, template_narrator, tavern, character):
        generated = await template_narrator.generate(tavern, character, "I sneak", [stealth_success()])
        assert generated == template_narrator.render(tavern, character, [stealth_success()])


class TestDescribeResult:
    """Test suite for describe_result"""

    def test_check_line(self, tavern):
        line = describe_result(stealth_success(), tavern)
        assert line == "DEX check (skill_check_stealth): rolled 15, total 19 vs DC 15 -> success"

    def test_attack_line(self, tavern):
        line = describe_result(killing_blow(), tavern)
        assert line.startswith("Attack on Rowdy Patron: 19 vs AC 11 -> hit for 7 piercing damage")


class TestOpenAINarrationGenerator:
    """Test suite for OpenAINarrationGenerator"""

    @pytest.fixture
    def llm_client(self) -> MagicMock:
        client = MagicMock()
        client.call_json = AsyncMock(return_value={
            "narration": "  You slip between the tables unseen.  ",
            "choices": ["Hide", "Listen", "Leave", "Wait"],
        })
        return client

    @pytest.mark.asyncio
    async def test_generate_trims_choices(self, llm_client, tavern, character):
        narrator = OpenAINarrationGenerator(llm_client, choice_count=3)
        draft = await narrator.generate(tavern, character, "I sneak", [stealth_success()])
        assert draft.narration == "You slip between the tables unseen."
        assert draft.choices == ["Hide", "Listen", "Leave"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [LLMCallFailed("down"), InvalidLLMResponse("not json")])
    async def test_client_errors_become_narration_failed(self, llm_client, tavern, character, error):
        llm_client.call_json.side_effect = error
        with pytest.raises(NarrationFailed):
            await OpenAINarrationGenerator(llm_client).generate(tavern, character, "I sneak", [])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"narration": "   ", "choices": []},
        {"choices": ["Hide"]},
        {"narration": "Fine.", "choices": "Hide"},
        {"narration": "Fine.", "choices": [1, 2]},
    ])
    async def test_malformed_payload(self, llm_client, tavern, character, payload):
        llm_client.call_json.return_value = payload
        with pytest.raises(NarrationFailed):
            await OpenAINarrationGenerator(llm_client).generate(tavern, character, "I sneak", [])

    def test_prompts_carry_results_and_feedback(self, llm_client, tavern, character):
        narrator = OpenAINarrationGenerator(llm_client)
        system_prompt, user_prompt = narrator.build_prompts(
            tavern, character, "I sneak", [stealth_success()], AgeRating.TEEN,
            revision_feedback=["Narration too long: 600 words (max: 500)"],
        )
        assert "rated Teen" in system_prompt
        assert "DEX check (skill_check_stealth)" in user_prompt
        assert "The barkeep is a stout dwarf named Thorin" in user_prompt
        assert "Narration too long: 600 words (max: 500)" in user_prompt

    def test_prompts_without_rolls(self, llm_client, tavern, character):
        _, user_prompt = OpenAINarrationGenerator(llm_client).build_prompts(
            tavern, character, "I wait", [], AgeRating.TEEN
        )
        assert "No dice were rolled." in user_prompt
