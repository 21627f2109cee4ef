# ABOUTME: Read-only lorebook lookup for scenes, locations and NPCs.
# ABOUTME: Loads from a JSON lorebook file or falls back to the bundled starter content.

import json
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from agentic_rpg.config.starter_content import starter_locations, starter_scenes
from agentic_rpg.models.entities import NPC, Location, Scene
from agentic_rpg.persistence.exceptions import ContentNotFound, InvalidContentFile


class KeywordMatches(BaseModel):
    """Lorebook entries whose tags or keywords matched a search"""

    scenes: list[Scene] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.scenes or self.locations or self.npcs)


class ContentStore(Protocol):
    def get_scene(self, scene_id: str) -> Scene: ...

    def get_location(self, location_id: str) -> Location: ...

    def get_npc(self, npc_id: str) -> NPC: ...

    def search_by_keywords(self, keywords: list[str]) -> KeywordMatches: ...


class LorebookContentStore:
    """
    In-memory lorebook.

    Lookups return copies, so callers can't alter the lorebook.
    Scene NPCs are also indexed for get_npc().
    """

    def __init__(
        self,
        scenes: list[Scene] | None = None,
        locations: list[Location] | None = None,
        npcs: list[NPC] | None = None,
    ):
        self._scenes = {scene.id: scene for scene in scenes or []}
        self._locations = {location.id: location for location in locations or []}
        self._npcs: dict[str, NPC] = {}
        for scene in self._scenes.values():
            for npc in scene.npcs:
                self._npcs.setdefault(npc.id, npc)
        for npc in npcs or []:
            self._npcs[npc.id] = npc

    @classmethod
    def with_starter_content(cls) -> "LorebookContentStore":
        return cls(scenes=starter_scenes(), locations=starter_locations())

    @classmethod
    def from_json_file(cls, path: str | Path) -> "LorebookContentStore":
        """
        Load a lorebook file shaped as {"scenes": [...], "locations": [...], "npcs": [...]}.

        Raises:
            InvalidContentFile: If the file can't be read or doesn't validate
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidContentFile(f"Cannot read lorebook {path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidContentFile(f"Lorebook {path} must contain a JSON object")

        try:
            store = cls(
                scenes=[Scene.model_validate(s) for s in data.get("scenes", [])],
                locations=[Location.model_validate(loc) for loc in data.get("locations", [])],
                npcs=[NPC.model_validate(n) for n in data.get("npcs", [])],
            )
        except ValidationError as e:
            raise InvalidContentFile(f"Invalid lorebook entry in {path}: {e}") from e

        logger.info(
            f"Loaded lorebook {path}: {len(store._scenes)} scenes, "
            f"{len(store._locations)} locations, {len(store._npcs)} NPCs"
        )
        return store

    def has_scene(self, scene_id: str) -> bool:
        return scene_id in self._scenes

    def scene_ids(self) -> list[str]:
        return list(self._scenes)

    def get_scene(self, scene_id: str) -> Scene:
        if scene_id not in self._scenes:
            raise ContentNotFound(f"Scene not found: {scene_id}")
        return self._scenes[scene_id].model_copy(deep=True)

    def get_location(self, location_id: str) -> Location:
        if location_id not in self._locations:
            raise ContentNotFound(f"Location not found: {location_id}")
        return self._locations[location_id].model_copy(deep=True)

    def get_npc(self, npc_id: str) -> NPC:
        if npc_id not in self._npcs:
            raise ContentNotFound(f"NPC not found: {npc_id}")
        return self._npcs[npc_id].model_copy(deep=True)

    def search_by_keywords(self, keywords: list[str]) -> KeywordMatches:
        """Case-insensitive match against scene tags, location tags/keywords and NPC tags"""
        wanted = {keyword.lower() for keyword in keywords if keyword}
        matches = KeywordMatches()
        if not wanted:
            return matches

        def hit(values: list[str]) -> bool:
            return any(value.lower() in wanted for value in values)

        matches.scenes = [s.model_copy(deep=True) for s in self._scenes.values() if hit(s.tags)]
        matches.locations = [
            loc.model_copy(deep=True)
            for loc in self._locations.values()
            if hit(loc.tags) or hit(loc.keywords)
        ]
        matches.npcs = [n.model_copy(deep=True) for n in self._npcs.values() if hit(n.tags)]
        return matches
