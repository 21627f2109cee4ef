"""Agentic RPG turn engine: deterministic rules, validated turns, async image jobs"""

__version__ = "0.1.0"
