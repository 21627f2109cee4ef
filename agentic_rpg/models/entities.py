# ABOUTME: Pydantic models for the adventure's entities: characters, NPCs, scenes and sessions.
# ABOUTME: Only the orchestrator mutates these; tools read snapshots and return results.

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

ABILITIES = ("STR", "DEX", "CON", "INT", "WIS", "CHA")


def ability_modifier(score: int) -> int:
    """floor((score - 10) / 2); floor division keeps odd low scores correct (9 -> -1)"""
    return (score - 10) // 2


def proficiency_bonus_for_level(level: int) -> int:
    """+2 at levels 1-4, +3 at 5-8, and so on"""
    return -(-level // 4) + 1


class AgeRating(str, Enum):
    """Content rating a session is played at"""
    TEEN = "Teen"
    ADULT = "Adult"


class HitPoints(BaseModel):
    current: int = Field(ge=0)
    max: int = Field(ge=1)


class Item(BaseModel):
    """Inventory item"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str
    quantity: int = Field(default=1, ge=1)
    value: int = Field(default=0, ge=0, description="Value in gold per unit")


class Condition(BaseModel):
    """Status condition on a creature (poisoned, prone, ...)"""

    type: str
    duration: int | None = Field(
        default=None,
        description="Remaining rounds; None means until removed"
    )
    applied_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


class AttackProfile(BaseModel):
    """A character's default weapon attack"""

    name: str = "Shortsword"
    ability: str = "DEX"
    damage: str = "1d6"
    damage_type: str = "piercing"
    proficient: bool = True


class Character(BaseModel):
    """Player character sheet"""

    id: str = Field(default_factory=lambda: f"char_{uuid.uuid4().hex[:8]}")
    name: str = "Adventurer"
    level: int = Field(default=1, ge=1, le=20)
    abilities: dict[str, int] = Field(
        default_factory=lambda: {ability: 10 for ability in ABILITIES}
    )
    proficiencies: list[str] = Field(default_factory=list, description="Proficient skills")
    saving_throw_proficiencies: list[str] = Field(default_factory=list)
    hp: HitPoints = Field(default_factory=lambda: HitPoints(current=20, max=20))
    armor_class: int = 12
    resources: dict[str, int] = Field(default_factory=lambda: {"gold": 50})
    inventory: list[Item] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    attack: AttackProfile = Field(default_factory=AttackProfile)
    experience: int = 0

    @field_validator("abilities")
    @classmethod
    def validate_ability_keys(cls, v: dict[str, int]) -> dict[str, int]:
        unknown = set(v) - set(ABILITIES)
        if unknown:
            raise ValueError(f"Unknown ability keys: {sorted(unknown)}")
        return v

    @property
    def proficiency_bonus(self) -> int:
        return proficiency_bonus_for_level(self.level)

    def ability_modifier(self, ability: str) -> int:
        return ability_modifier(self.abilities[ability])

    def attack_modifier(self) -> int:
        """To-hit modifier for the default attack"""
        bonus = self.proficiency_bonus if self.attack.proficient else 0
        return self.ability_modifier(self.attack.ability) + bonus

    def find_item(self, name: str) -> Item | None:
        lowered = name.lower()
        return next((item for item in self.inventory if item.name.lower() == lowered), None)

    def has_item(self, name: str, quantity: int = 1) -> bool:
        item = self.find_item(name)
        return item is not None and item.quantity >= quantity


class NPC(BaseModel):
    """Non-player character present in a scene"""

    id: str
    name: str
    role: str = ""
    disposition: str = "neutral"
    hp: HitPoints | None = None
    armor_class: int = 10
    abilities: dict[str, int] = Field(
        default_factory=lambda: {ability: 10 for ability in ABILITIES}
    )
    tags: list[str] = Field(default_factory=list)

    @property
    def defeated(self) -> bool:
        return self.hp is not None and self.hp.current <= 0


class CanonicalFact(BaseModel):
    """Established fact about a scene, with phrases that would contradict it"""

    description: str
    contradictions: list[str] = Field(default_factory=list)
    active: bool = True


class Exit(BaseModel):
    direction: str
    target_scene_id: str | None = None
    description: str = ""


class Scene(BaseModel):
    """A playable scene: flags, NPCs, exits and canonical facts"""

    id: str
    title: str = ""
    synopsis: str = ""
    chapter: int = 1
    flags: dict[str, Any] = Field(default_factory=dict)
    npcs: list[NPC] = Field(default_factory=list)
    exits: list[Exit] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    canonical_facts: list[CanonicalFact] = Field(default_factory=list)
    difficulty: str = "Standard"
    encounter_type: str = "narrative"

    def get_npc(self, npc_id: str) -> NPC | None:
        return next((npc for npc in self.npcs if npc.id == npc_id), None)

    def active_facts(self) -> list[CanonicalFact]:
        return [fact for fact in self.canonical_facts if fact.active]


class Location(BaseModel):
    """Lorebook location entry"""

    id: str
    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    canonical_facts: list[str] = Field(default_factory=list)


class SessionSettings(BaseModel):
    age_rating: AgeRating = AgeRating.TEEN
    image_quality: str = "preview"
    images_enabled: bool = True
    auto_save: bool = True


class Session(BaseModel):
    """One player's ongoing game"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    player_id: str
    seed: int = Field(description="Session seed; every turn seed derives from it")
    started_at: datetime = Field(default_factory=datetime.now)
    difficulty: str = "Standard"
    settings: SessionSettings = Field(default_factory=SessionSettings)
    current_scene_id: str | None = None
    turn_count: int = Field(default=0, ge=0)
    last_activity: datetime = Field(default_factory=datetime.now)
    character: Character = Field(default_factory=Character)
