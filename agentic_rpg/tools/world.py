# ABOUTME: Explicitly owned store of scene state, global flags, in-game time and weather.
# ABOUTME: Every read-modify-write of a scene happens under that scene's asyncio.Lock.

import asyncio
from typing import Any

from loguru import logger

from agentic_rpg.models.entities import NPC, Scene
from agentic_rpg.models.tool_results import WorldUpdateResult
from agentic_rpg.tools.exceptions import SceneNotFound

VALID_WEATHER = ("clear", "cloudy", "rain", "storm", "fog", "snow")


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


class WorldStore:
    """
    Scene state shared by every turn that touches a scene.

    Scenes handed out by get_scene() are copies; the only way to change a
    stored scene is through the locked update methods.
    """

    def __init__(self, scenes: list[Scene] | None = None):
        self._scenes: dict[str, Scene] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.global_flags: dict[str, Any] = {}
        self.day = 1
        self.hour = 12
        self.weather = "clear"
        for scene in scenes or []:
            self._scenes[scene.id] = scene.model_copy(deep=True)

    def _lock(self, scene_id: str) -> asyncio.Lock:
        return self._locks.setdefault(scene_id, asyncio.Lock())

    def has_scene(self, scene_id: str) -> bool:
        return scene_id in self._scenes

    def scene_ids(self) -> list[str]:
        return list(self._scenes)

    def get_scene(self, scene_id: str) -> Scene | None:
        scene = self._scenes.get(scene_id)
        return scene.model_copy(deep=True) if scene else None

    async def add_scene(self, scene: Scene, replace: bool = False) -> Scene:
        """Register a scene; an existing scene is kept unless replace=True"""
        async with self._lock(scene.id):
            if replace or scene.id not in self._scenes:
                self._scenes[scene.id] = scene.model_copy(deep=True)
                logger.debug(f"Scene registered: {scene.id}")
            return self._scenes[scene.id].model_copy(deep=True)

    async def update_scene(
        self,
        scene_id: str,
        flags: dict[str, Any] | None = None,
        npcs: list[NPC] | None = None,
    ) -> WorldUpdateResult:
        """
        Merge flags and NPC updates into a stored scene.

        Flags are plain key/value writes, so applying the same update twice
        leaves the scene unchanged the second time.

        Raises:
            SceneNotFound: If scene_id isn't registered
        """
        flags = dict(flags or {})
        async with self._lock(scene_id):
            scene = self._scenes.get(scene_id)
            if scene is None:
                raise SceneNotFound(scene_id)

            changed = {
                key: value for key, value in flags.items()
                if scene.flags.get(key, object()) != value
            }
            scene.flags.update(flags)

            for npc in npcs or []:
                existing = scene.get_npc(npc.id)
                if existing is None:
                    scene.npcs.append(npc)
                else:
                    scene.npcs[scene.npcs.index(existing)] = npc

        if changed:
            logger.info(f"Scene {scene_id} flags changed: {sorted(changed)}")
        return WorldUpdateResult(scene_id=scene_id, flags=flags, changed=changed)

    async def set_npc_hp(self, scene_id: str, npc_hp: dict[str, int]) -> None:
        """Write combat results back to NPCs; unknown NPC ids are skipped"""
        async with self._lock(scene_id):
            scene = self._scenes.get(scene_id)
            if scene is None:
                raise SceneNotFound(scene_id)
            for npc_id, hp in npc_hp.items():
                npc = scene.get_npc(npc_id)
                if npc is None or npc.hp is None:
                    logger.warning(f"Skipping hp update for unknown NPC {npc_id} in {scene_id}")
                    continue
                npc.hp.current = max(0, min(hp, npc.hp.max))

    def set_global_flag(self, key: str, value: Any) -> None:
        self.global_flags[key] = value

    def advance_time(self, hours: int = 1) -> dict[str, Any]:
        """
        Advance the in-game clock.

        Raises:
            ValueError: If hours is negative
        """
        if hours < 0:
            raise ValueError(f"Cannot advance time backwards: {hours}")
        total = self.hour + hours
        self.day += total // 24
        self.hour = total % 24
        return self.time()

    def time(self) -> dict[str, Any]:
        return {"day": self.day, "hour": self.hour, "time_of_day": time_of_day(self.hour)}

    def set_weather(self, weather: str) -> None:
        if weather not in VALID_WEATHER:
            raise ValueError(f"Invalid weather '{weather}'. Must be one of: {', '.join(VALID_WEATHER)}")
        self.weather = weather
