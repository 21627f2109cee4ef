"""Turn output validation: content policy and safety/mechanics checks"""

from .content_policy import ContentPolicy, InputModeration, PolicyViolation
from .safety_validator import SafetyValidator

__all__ = [
    "ContentPolicy",
    "InputModeration",
    "PolicyViolation",
    "SafetyValidator",
]
