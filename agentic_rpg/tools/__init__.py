"""Deterministic game tools: dice, rules, combat, inventory and world state"""

from .combat import CombatEngine
from .executor import ToolExecutor
from .inventory import InventoryTool
from .rng import RNGEngine, derive_turn_seed, parse_dice_notation, step_seed
from .rules import RulesEngine, difficulty_class
from .world import WorldStore

__all__ = [
    "RNGEngine",
    "parse_dice_notation",
    "derive_turn_seed",
    "step_seed",
    "RulesEngine",
    "difficulty_class",
    "CombatEngine",
    "InventoryTool",
    "WorldStore",
    "ToolExecutor",
]
