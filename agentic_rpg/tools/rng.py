# ABOUTME: Deterministic seeded dice engine with D&D notation parsing ("2d6+3", "1d20-1").
# ABOUTME: Every roll builds a fresh random source from its seed, so replaying a seed replays the dice.

import random
import re
from collections.abc import Callable
from typing import Protocol

from agentic_rpg.models.dice_models import RollResult
from agentic_rpg.tools.exceptions import InvalidDiceSpec

# Standard D&D dice types
VALID_DICE_SIDES = {4, 6, 8, 10, 12, 20, 100}

MAX_DICE = 100

# Seeds reserved per plan step: a step may use seed, seed+1 and seed+2
STEP_SEED_STRIDE = 10

_DICE_PATTERN = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$")


class DiceSource(Protocol):
    """Anything that can draw an integer in [a, b], e.g. random.Random"""

    def randint(self, a: int, b: int) -> int: ...


def parse_dice_notation(notation: str) -> tuple[int, int, int]:
    """
    Parse dice notation into components.

    Supports patterns:
    - "2d6+3" -> (2, 6, 3)
    - "1d20" -> (1, 20, 0)
    - "3d8-2" -> (3, 8, -2)

    Args:
        notation: Dice notation string

    Returns:
        Tuple of (num_dice, die_size, modifier)

    Raises:
        InvalidDiceSpec: If notation is malformed or uses unsupported dice
    """
    if not isinstance(notation, str):
        raise InvalidDiceSpec(f"Dice notation must be a string, got {type(notation).__name__}")

    cleaned = notation.strip().lower()
    match = _DICE_PATTERN.match(cleaned)

    if not match:
        raise InvalidDiceSpec(
            f"Invalid dice notation: '{notation}'. "
            f"Expected format: 'NdM' or 'NdM+K' (e.g., '2d6', '1d20+5')"
        )

    num_dice_str, die_size_str, modifier_str = match.groups()
    num_dice = int(num_dice_str)
    die_size = int(die_size_str)
    modifier = int(modifier_str) if modifier_str else 0

    if num_dice < 1:
        raise InvalidDiceSpec(f"Number of dice must be at least 1, got {num_dice}")

    if num_dice > MAX_DICE:
        raise InvalidDiceSpec(f"Number of dice cannot exceed {MAX_DICE}, got {num_dice}")

    if die_size not in VALID_DICE_SIDES:
        raise InvalidDiceSpec(
            f"Invalid die size: d{die_size}. "
            f"Supported dice: {', '.join(f'd{d}' for d in sorted(VALID_DICE_SIDES))}"
        )

    return num_dice, die_size, modifier


def format_dice_notation(num_dice: int, die_size: int, modifier: int = 0) -> str:
    """Inverse of parse_dice_notation: (1, 8, -1) -> '1d8-1'"""
    if modifier:
        return f"{num_dice}d{die_size}{modifier:+d}"
    return f"{num_dice}d{die_size}"


def derive_turn_seed(session_seed: int, turn_number: int) -> int:
    """
    Derive the base seed for one turn.

    The same session seed and turn number always produce the same base seed,
    so a turn can be replayed from its session alone.
    """
    return session_seed * 1000 + turn_number * 100


def step_seed(turn_seed: int, step_index: int) -> int:
    """Seed for the n-th plan step; leaves room for seed+1/seed+2 derived draws"""
    return turn_seed + step_index * STEP_SEED_STRIDE


class RNGEngine:
    """
    Pure dice engine.

    Every call constructs a fresh source from `seed`, so two calls with the
    same seed and arguments always return identical results. No state is
    kept between calls.
    """

    def __init__(self, source_factory: Callable[[int], DiceSource] | None = None):
        """
        Args:
            source_factory: Builds a dice source from a seed (default: random.Random).
                Tests inject scripted sources to force die faces.
        """
        self._source_factory = source_factory or random.Random

    def _source(self, seed: int) -> DiceSource:
        return self._source_factory(seed)

    def roll(self, seed: int, spec: str) -> RollResult:
        """
        Roll dice from notation.

        Args:
            seed: Deterministic seed
            spec: Dice notation, e.g. "2d6+3"

        Returns:
            RollResult with every die face and the flat modifier

        Raises:
            InvalidDiceSpec: If spec is malformed
        """
        num_dice, die_size, modifier = parse_dice_notation(spec)
        source = self._source(seed)

        rolls = tuple(source.randint(1, die_size) for _ in range(num_dice))

        return RollResult(
            rolls=rolls,
            modifier=modifier,
            total=sum(rolls) + modifier,
            seed=seed,
            notation=format_dice_notation(num_dice, die_size, modifier),
        )

    def d20(self, seed: int, modifier: int = 0) -> RollResult:
        """Single d20 plus modifier"""
        face = self._source(seed).randint(1, 20)
        return RollResult(
            rolls=(face,),
            modifier=modifier,
            total=face + modifier,
            seed=seed,
            notation=format_dice_notation(1, 20, modifier),
        )

    def advantage(self, seed: int, modifier: int = 0) -> RollResult:
        """Two d20 draws, keep the higher; the lower is recorded as dropped"""
        return self._two_d20(seed, modifier, keep=max)

    def disadvantage(self, seed: int, modifier: int = 0) -> RollResult:
        """Two d20 draws, keep the lower; the higher is recorded as dropped"""
        return self._two_d20(seed, modifier, keep=min)

    def _two_d20(self, seed: int, modifier: int, keep: Callable[[int, int], int]) -> RollResult:
        source = self._source(seed)
        first = source.randint(1, 20)
        second = source.randint(1, 20)

        kept = keep(first, second)
        # Drop the other draw; on a tie either face is the same value
        dropped = second if kept == first else first

        return RollResult(
            rolls=(kept,),
            dropped=(dropped,),
            modifier=modifier,
            total=kept + modifier,
            seed=seed,
            notation=format_dice_notation(1, 20, modifier),
        )
