"""Planning and narration agents"""

from .llm_client import LLMClient
from .narrator import (
    NarrationDraft,
    NarrationGenerator,
    OpenAINarrationGenerator,
    TemplateNarrator,
)
from .planner import ActionParser, Planner

__all__ = [
    "LLMClient",
    "NarrationDraft",
    "NarrationGenerator",
    "TemplateNarrator",
    "OpenAINarrationGenerator",
    "ActionParser",
    "Planner",
]
