# ABOUTME: TurnOrchestrator drives one player action through the turn state machine to AwaitInput.
# ABOUTME: Serializes turns per session, bootstraps sessions and scenes, saves sessions and forwards images.

import asyncio
import zlib
from collections import deque
from datetime import datetime
from typing import Any

from loguru import logger
from openai import AsyncOpenAI

from agentic_rpg.agents.llm_client import LLMClient
from agentic_rpg.agents.narrator import NarrationGenerator, OpenAINarrationGenerator, TemplateNarrator
from agentic_rpg.agents.planner import Planner
from agentic_rpg.config.settings import Settings, get_settings
from agentic_rpg.config.starter_content import STARTING_SCENE_ID, default_character, starting_scene
from agentic_rpg.models.entities import AgeRating, Character, Scene, Session, SessionSettings
from agentic_rpg.models.game_state import TurnContext, TurnRequest, TurnResponse, TurnState
from agentic_rpg.models.image_job import ImageJobTicket, JobStatusReport
from agentic_rpg.models.trace import Trace
from agentic_rpg.orchestration.exceptions import IllegalTransition, MissingStateHandler
from agentic_rpg.orchestration.nodes import (
    _create_plan_node,
    _create_recover_node,
    _create_reduce_node,
    _create_render_node,
    _create_safety_node,
    _create_tool_exec_node,
    fallback_output,
    handle_error,
    recover_error_handler,
)
from agentic_rpg.orchestration.state_machine import TurnStateMachine
from agentic_rpg.persistence.content_store import ContentStore, LorebookContentStore
from agentic_rpg.persistence.exceptions import ContentNotFound
from agentic_rpg.persistence.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from agentic_rpg.tools.combat import CombatEngine
from agentic_rpg.tools.executor import ToolExecutor
from agentic_rpg.tools.inventory import InventoryTool
from agentic_rpg.tools.rng import RNGEngine, derive_turn_seed
from agentic_rpg.tools.rules import RulesEngine
from agentic_rpg.tools.world import WorldStore
from agentic_rpg.utils.logging import log_turn_event
from agentic_rpg.validation.content_policy import ContentPolicy
from agentic_rpg.validation.safety_validator import SafetyValidator
from agentic_rpg.workers.exceptions import JobNotFound
from agentic_rpg.workers.image_pipeline import ImageJobPipeline

# Recent traces kept per session
TRACE_HISTORY = 50


class TurnOrchestrator:
    """
    High-level entry point for playing turns.

    One TurnStateMachine per session. Turns for the same session are
    serialized by a per-session asyncio.Lock; different sessions run
    concurrently. The orchestrator is the only component that mutates
    sessions and characters.
    """

    def __init__(
        self,
        planner: Planner,
        executor: ToolExecutor,
        validator: SafetyValidator,
        world: WorldStore,
        session_store: SessionStore,
        content_store: ContentStore | None = None,
        narrator: NarrationGenerator | None = None,
        image_pipeline: ImageJobPipeline | None = None,
        policy: ContentPolicy | None = None,
        max_revision_attempts: int = 2,
        max_state_steps: int = 40,
        default_age_rating: AgeRating = AgeRating.TEEN,
        choice_count: int = 3,
    ):
        """
        Args:
            planner: Builds seeded plans from player input
            executor: Runs plan steps against the game tools
            validator: Checks each proposed output
            world: Scene state shared by all sessions
            session_store: Saves sessions after each turn
            content_store: Lorebook used to load scenes the world store lacks
            narrator: Narration generator; defaults to the template narrator
            image_pipeline: Receives approved image requests (None disables images)
            policy: Moderates raw player input
            max_revision_attempts: Plan re-entries allowed per turn
            max_state_steps: Hard cap on state handler runs per turn
            default_age_rating: Rating for newly created sessions
            choice_count: Choices offered by template narration
        """
        self.planner = planner
        self.executor = executor
        self.validator = validator
        self.world = world
        self.session_store = session_store
        self.content_store = content_store
        self.fallback_narrator = TemplateNarrator(choice_count=choice_count)
        self.narrator = narrator or self.fallback_narrator
        self.image_pipeline = image_pipeline
        self.policy = policy or ContentPolicy()
        self.inventory = executor.inventory
        self.max_revision_attempts = max_revision_attempts
        self.max_state_steps = max_state_steps
        self.default_age_rating = default_age_rating

        self._machines: dict[str, TurnStateMachine] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._sessions: dict[str, Session] = {}
        self._traces: dict[str, deque[Trace]] = {}
        self._turn_stats: dict[str, dict[str, int]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        session_store: SessionStore | None = None,
        content_store: ContentStore | None = None,
        narrator: NarrationGenerator | None = None,
        image_pipeline: ImageJobPipeline | None = None,
        rng: RNGEngine | None = None,
    ) -> "TurnOrchestrator":
        """Build a fully wired orchestrator from Settings"""
        settings = settings or get_settings()
        rng = rng or RNGEngine()
        rules = RulesEngine(rng)
        combat = CombatEngine(rng, crit_damage_rule=settings.critical_damage_rule)

        if content_store is None:
            if settings.lorebook_path:
                content_store = LorebookContentStore.from_json_file(settings.lorebook_path)
            else:
                content_store = LorebookContentStore.with_starter_content()

        if session_store is None:
            if settings.session_store_backend == "redis":
                session_store = RedisSessionStore.from_url(
                    settings.redis_url, ttl_seconds=settings.session_ttl_seconds
                )
            else:
                session_store = InMemorySessionStore()

        if narrator is None and settings.llm_narration_enabled and settings.openai_api_key:
            client = LLMClient(AsyncOpenAI(api_key=settings.openai_api_key), model=settings.openai_model)
            narrator = OpenAINarrationGenerator(
                client,
                choice_count=settings.choice_count,
                min_words=settings.min_narration_words,
                max_words=settings.max_narration_words,
                timeout=settings.llm_timeout_seconds,
            )

        world = WorldStore()
        return cls(
            planner=Planner(image_size=settings.image_preview_size),
            executor=ToolExecutor(rules, combat, world, InventoryTool()),
            validator=SafetyValidator.from_settings(settings),
            world=world,
            session_store=session_store,
            content_store=content_store,
            narrator=narrator,
            image_pipeline=image_pipeline or ImageJobPipeline.from_settings(settings),
            max_revision_attempts=settings.max_revision_attempts,
            max_state_steps=settings.max_state_steps,
            default_age_rating=settings.default_age_rating,
            choice_count=settings.choice_count,
        )

    # --- state machines ---------------------------------------------------

    def machine_for(self, session_id: str) -> TurnStateMachine:
        machine = self._machines.get(session_id)
        if machine is None:
            machine = self._build_machine(session_id)
            self._machines[session_id] = machine
        return machine

    def _build_machine(self, session_id: str) -> TurnStateMachine:
        machine = TurnStateMachine(session_id)
        machine.register(
            TurnState.PLAN,
            _create_plan_node(self.planner, self.policy),
            handle_error,
        )
        machine.register(TurnState.TOOL_EXEC, _create_tool_exec_node(self.executor), handle_error)
        machine.register(
            TurnState.REDUCE,
            _create_reduce_node(self.narrator, self.fallback_narrator),
            handle_error,
        )
        machine.register(
            TurnState.SAFETY,
            _create_safety_node(self.validator, self.max_revision_attempts),
            handle_error,
        )
        machine.register(
            TurnState.RENDER,
            _create_render_node(self.world, self.inventory, self.image_pipeline),
            handle_error,
        )
        machine.register(TurnState.RECOVER, _create_recover_node(), recover_error_handler)
        return machine

    # --- sessions ---------------------------------------------------------

    def create_session(
        self,
        session_id: str,
        player_id: str,
        seed: int | None = None,
        character: Character | None = None,
        age_rating: AgeRating | None = None,
        images_enabled: bool = True,
    ) -> Session:
        """
        Start a new session at the starting scene.

        Without an explicit seed, the seed is derived from the session id so
        the same id always replays the same dice.
        """
        session = Session(
            id=session_id,
            player_id=player_id,
            seed=seed if seed is not None else zlib.crc32(session_id.encode("utf-8")),
            settings=SessionSettings(
                age_rating=age_rating or self.default_age_rating,
                images_enabled=images_enabled,
            ),
            current_scene_id=STARTING_SCENE_ID,
            character=character or default_character(),
        )
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id} for player {player_id} (seed={session.seed})")
        return session

    def get_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._load_session(session_id)
            if session is not None:
                self._sessions[session_id] = session
        return session

    def _load_session(self, session_id: str) -> Session | None:
        try:
            return self.session_store.load(session_id)
        except Exception as e:
            logger.error(f"Session store load failed for {session_id}: {e}")
            return None

    def _save_session(self, session: Session) -> bool:
        try:
            saved = self.session_store.save(session)
        except Exception as e:
            logger.error(f"Session store save failed for {session.id}: {e}")
            return False
        if not saved:
            logger.warning(f"Session {session.id} was not saved")
        return saved

    async def _resolve_scene(self, scene_id: str | None) -> Scene:
        """World store first, then the content store, then the starting tavern"""
        if scene_id and self.world.has_scene(scene_id):
            return self.world.get_scene(scene_id)

        if scene_id and self.content_store is not None:
            try:
                return await self.world.add_scene(self.content_store.get_scene(scene_id))
            except ContentNotFound:
                logger.warning(f"Scene {scene_id} not found; using the starting scene")

        return await self.world.add_scene(starting_scene())

    # --- turns ------------------------------------------------------------

    async def submit_turn(self, request: TurnRequest) -> TurnResponse:
        """
        Play one player action to completion.

        Never raises for in-turn failures: any handler error ends in the
        recovery output, and the player always gets narration and choices.

        Args:
            request: Session, player and free-text action

        Returns:
            TurnResponse for the completed (or recovered) turn
        """
        lock = self._locks.setdefault(request.session_id, asyncio.Lock())
        async with lock:
            return await self._run_turn(request)

    async def _run_turn(self, request: TurnRequest) -> TurnResponse:
        session = self.get_session(request.session_id)
        if session is None:
            session = self.create_session(request.session_id, request.player_id)
        elif session.player_id != request.player_id:
            logger.warning(
                f"Player {request.player_id} submitted a turn for session "
                f"{session.id} owned by {session.player_id}"
            )

        scene = await self._resolve_scene(request.scene_id or session.current_scene_id)
        session.current_scene_id = scene.id

        turn_number = session.turn_count + 1
        turn_seed = derive_turn_seed(session.seed, turn_number)
        trace = Trace(
            session_id=session.id,
            turn=turn_number,
            scene_id=scene.id,
            player_input=request.player_input,
            turn_seed=turn_seed,
        )
        ctx = TurnContext(
            session=session,
            scene=scene,
            character=session.character,
            player_input=request.player_input,
            turn_seed=turn_seed,
            trace=trace,
        )

        log_turn_event(
            f"=== TURN {turn_number} STARTED ===",
            state="IDLE",
            session_id=session.id,
            turn_number=turn_number,
            scene=scene.id,
        )

        machine = self.machine_for(session.id)
        if not machine.is_resting():
            machine.reset()
        await self._drive(machine, ctx)

        output = ctx.final_output
        if output is None:
            ctx.recovered = True
            output = fallback_output()

        session.turn_count = turn_number
        session.last_activity = datetime.now()
        if session.settings.auto_save:
            self._save_session(session)

        self._traces.setdefault(session.id, deque(maxlen=TRACE_HISTORY)).append(trace)
        stats = self._turn_stats.setdefault(session.id, {"turns": 0, "revisions": 0, "recoveries": 0})
        stats["turns"] += 1
        stats["revisions"] += ctx.revision_count
        stats["recoveries"] += int(ctx.recovered)

        log_turn_event(
            f"=== TURN {turn_number} {'RECOVERED' if ctx.recovered else 'COMPLETED'} ===",
            state=machine.state.value.upper(),
            session_id=session.id,
            turn_number=turn_number,
            level="WARNING" if ctx.recovered else "INFO",
            revisions=ctx.revision_count,
        )

        warnings = []
        if ctx.verdict is not None and not ctx.recovered:
            warnings = list(ctx.verdict.warnings)

        return TurnResponse(
            session_id=session.id,
            scene_id=session.current_scene_id,
            narration=output.narration,
            action_log=output.action_log,
            choices=output.choices,
            state_updates=output.state_updates,
            image_request=output.image_request,
            turn_count=session.turn_count,
            revisions=ctx.revision_count,
            recovered=ctx.recovered,
            warnings=warnings,
        )

    async def _drive(self, machine: TurnStateMachine, ctx: TurnContext) -> None:
        """Run handlers and apply their transitions until the machine rests"""
        machine.transition(TurnState.PLAN, ctx.snapshot())
        steps = 0

        while not machine.is_resting():
            steps += 1
            if steps > self.max_state_steps and machine.state != TurnState.RECOVER:
                self._divert_to_recover(
                    machine, ctx, f"Turn exceeded {self.max_state_steps} state steps"
                )
                continue

            try:
                result = await machine.execute_state(ctx)
            except MissingStateHandler as e:
                self._divert_to_recover(machine, ctx, str(e))
                continue

            try:
                machine.transition(result.next_state, ctx.snapshot() | result.detail)
            except IllegalTransition as e:
                logger.error(f"[STATE: {machine.state.value.upper()}] {e}")
                self._divert_to_recover(machine, ctx, str(e))

    def _divert_to_recover(self, machine: TurnStateMachine, ctx: TurnContext, reason: str) -> None:
        ctx.errors.append(reason)
        ctx.trace.add_output("error", {"error": reason})
        if machine.state == TurnState.RECOVER:
            ctx.final_output = ctx.final_output or fallback_output()
            ctx.recovered = True
            machine.transition(TurnState.AWAIT_INPUT, ctx.snapshot())
        else:
            machine.transition(TurnState.RECOVER, ctx.snapshot())

    # --- queries ----------------------------------------------------------

    def traces(self, session_id: str) -> list[Trace]:
        """Recent turn traces for a session, oldest first"""
        return list(self._traces.get(session_id, ()))

    def session_stats(self, session_id: str) -> dict[str, Any] | None:
        session = self.get_session(session_id)
        if session is None:
            return None
        character = session.character
        machine = self._machines.get(session_id)
        return {
            "session_id": session.id,
            "player_id": session.player_id,
            "turn_count": session.turn_count,
            "current_scene_id": session.current_scene_id,
            "last_activity": session.last_activity.isoformat(),
            "character": {
                "name": character.name,
                "level": character.level,
                "hp": f"{character.hp.current}/{character.hp.max}",
                "resources": dict(character.resources),
                "inventory": [item.name for item in character.inventory],
            },
            "world_time": self.world.time(),
            "turns": dict(self._turn_stats.get(session_id, {"turns": 0, "revisions": 0, "recoveries": 0})),
            "state_machine": machine.metrics() if machine else None,
        }

    async def shutdown_session(self, session_id: str) -> bool:
        """Save and forget a session. Returns False if the session is unknown."""
        lock = self._locks.get(session_id)
        if lock is None and session_id not in self._sessions:
            return False
        async with lock or asyncio.Lock():
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._save_session(session)
            self._machines.pop(session_id, None)
            self._traces.pop(session_id, None)
            self._turn_stats.pop(session_id, None)
        self._locks.pop(session_id, None)
        logger.info(f"Session {session_id} shut down")
        return session is not None

    # --- images -----------------------------------------------------------

    def get_image_status(self, job_id: str) -> JobStatusReport:
        if self.image_pipeline is None:
            return JobStatusReport(job_id=job_id, status="not_found")
        return self.image_pipeline.get_status(job_id)

    async def rerender_hq(self, job_id: str) -> ImageJobTicket:
        """
        Raises:
            JobNotFound: If images are disabled or the job isn't a completed job
        """
        if self.image_pipeline is None:
            raise JobNotFound(job_id)
        return await self.image_pipeline.rerender_hq(job_id)
