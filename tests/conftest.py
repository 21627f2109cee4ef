# ABOUTME: Shared pytest fixtures for unit and integration tests.
# ABOUTME: Provides scripted dice, starter characters and scenes, mocked Redis/OpenAI clients and orchestrators.

import random
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis import Redis

from agentic_rpg.agents.narrator import TemplateNarrator
from agentic_rpg.agents.planner import Planner
from agentic_rpg.config.starter_content import default_character, starter_scenes, starting_scene
from agentic_rpg.models.entities import Character, Scene, Session
from agentic_rpg.models.game_state import TurnContext
from agentic_rpg.models.trace import Trace
from agentic_rpg.orchestration.turn_orchestrator import TurnOrchestrator
from agentic_rpg.persistence.content_store import LorebookContentStore
from agentic_rpg.persistence.session_store import InMemorySessionStore
from agentic_rpg.tools.combat import CombatEngine
from agentic_rpg.tools.executor import ToolExecutor
from agentic_rpg.tools.rng import RNGEngine
from agentic_rpg.tools.rules import RulesEngine
from agentic_rpg.tools.world import WorldStore
from agentic_rpg.validation.safety_validator import SafetyValidator


# --- Helper Classes ---

class ScriptedSource:
    """Dice source that returns fixed faces in order"""

    def __init__(self, faces: list[int]):
        self._faces = iter(faces)

    def randint(self, a: int, b: int) -> int:
        return next(self._faces)


class ScriptedDice:
    """
    Source factory for RNGEngine.

    Seeds with scripted faces return them in order on every construction;
    any other seed falls back to random.Random(seed).
    """

    def __init__(self, faces_by_seed: dict[int, list[int]] | None = None):
        self.faces_by_seed = dict(faces_by_seed or {})
        self.seeds_used: list[int] = []

    def __call__(self, seed: int):
        self.seeds_used.append(seed)
        if seed in self.faces_by_seed:
            return ScriptedSource(self.faces_by_seed[seed])
        return random.Random(seed)


def make_context(
    session: Session | None = None,
    scene: Scene | None = None,
    player_input: str = "I look around",
    turn_seed: int = 4200,
) -> TurnContext:
    """Build a TurnContext around the starter character and tavern"""
    session = session or Session(id="s-test", player_id="p-test", seed=42, character=default_character())
    scene = scene or starting_scene()
    return TurnContext(
        session=session,
        scene=scene,
        character=session.character,
        player_input=player_input,
        turn_seed=turn_seed,
        trace=Trace(session_id=session.id, turn=session.turn_count + 1, scene_id=scene.id,
                    player_input=player_input, turn_seed=turn_seed),
    )


def build_orchestrator(
    dice: ScriptedDice | None = None,
    narrator=None,
    image_pipeline=None,
    session_store=None,
    max_revision_attempts: int = 2,
    images_enabled: bool = False,
    max_state_steps: int = 40,
) -> TurnOrchestrator:
    """Orchestrator wired with in-memory stores and the starter lorebook"""
    rng = RNGEngine(dice) if dice is not None else RNGEngine()
    world = WorldStore()
    return TurnOrchestrator(
        planner=Planner(images_enabled=images_enabled),
        executor=ToolExecutor(RulesEngine(rng), CombatEngine(rng), world),
        validator=SafetyValidator(),
        world=world,
        session_store=session_store or InMemorySessionStore(),
        content_store=LorebookContentStore.with_starter_content(),
        narrator=narrator,
        image_pipeline=image_pipeline,
        max_revision_attempts=max_revision_attempts,
        max_state_steps=max_state_steps,
    )


# --- Entity Fixtures ---

@pytest.fixture
def character() -> Character:
    """Level 1 starter adventurer (STR 12, DEX 14, WIS 15)"""
    return default_character()


@pytest.fixture
def tavern() -> Scene:
    """Starting tavern with Thorin and a hostile rowdy patron"""
    return starting_scene()


@pytest.fixture
def world() -> WorldStore:
    return WorldStore(starter_scenes())


@pytest.fixture
def session(character) -> Session:
    return Session(id="session-1", player_id="player-1", seed=42, character=character)


# --- Tool Fixtures ---

@pytest.fixture
def scripted_dice():
    """Factory fixture: scripted_dice({seed: [faces]}) -> RNGEngine"""
    def _make(faces_by_seed: dict[int, list[int]] | None = None) -> RNGEngine:
        return RNGEngine(ScriptedDice(faces_by_seed))
    return _make


@pytest.fixture
def rng() -> RNGEngine:
    return RNGEngine()


@pytest.fixture
def executor(world) -> ToolExecutor:
    rng = RNGEngine()
    return ToolExecutor(RulesEngine(rng), CombatEngine(rng), world)


# --- Mock Client Fixtures ---

@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock Redis client for testing without a server"""
    client = MagicMock(spec=Redis)
    client.get.return_value = None
    client.smembers.return_value = set()
    client.exists.return_value = 1
    client.delete.return_value = 1
    return client


@pytest.fixture
def mock_openai_client() -> MagicMock:
    """Mock AsyncOpenAI client whose completions return a JSON narration"""
    client = MagicMock()
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = (
        '{"narration": "The tavern hums with quiet conversation as you look around the room.", '
        '"choices": ["Talk to Thorin", "Order a drink", "Leave the tavern"]}'
    )
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


# --- Orchestrator Fixtures ---

@pytest.fixture
def orchestrator() -> TurnOrchestrator:
    """Orchestrator with template narration, no images and in-memory sessions"""
    return build_orchestrator()


@pytest.fixture
def template_narrator() -> TemplateNarrator:
    return TemplateNarrator()
