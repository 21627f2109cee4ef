# ABOUTME: Age-rating scoped content classifier for narration, choices, image prompts and player input.
# ABOUTME: Categories are regex lists; each rating forbids a set of categories.

import re
from dataclasses import dataclass

from agentic_rpg.models.entities import AgeRating

CONTENT_FILTERS: dict[str, list[re.Pattern]] = {
    "explicit": [
        re.compile(r"\b(?:explicit sexual|graphic violence|gore|torture)\b", re.IGNORECASE),
        re.compile(r"\b(?:rape|sexual assault|abuse)\b", re.IGNORECASE),
    ],
    "profanity": [
        re.compile(r"\b(?:fuck|shit|damn|hell|bitch|asshole)\b", re.IGNORECASE),
    ],
    "sensitive": [
        re.compile(r"\b(?:suicide|self-harm|drug abuse)\b", re.IGNORECASE),
    ],
}

FORBIDDEN_CATEGORIES: dict[AgeRating, tuple[str, ...]] = {
    AgeRating.TEEN: ("explicit", "profanity", "sensitive"),
    AgeRating.ADULT: ("explicit",),
}

REDACTIONS = {
    "explicit": "[content removed]",
    "profanity": "[expletive]",
    "sensitive": "[sensitive content]",
}

IMAGE_PROMPT_FILTERS: list[re.Pattern] = [
    re.compile(r"\b(?:nude|naked|sexual|explicit|nsfw)\b", re.IGNORECASE),
    re.compile(r"\b(?:gore|graphic violence|blood)\b", re.IGNORECASE),
    re.compile(r"\b(?:hate|nazi|racist)\b", re.IGNORECASE),
]

SPAM_PATTERN = re.compile(r"(.)\1{10,}")
MAX_PLAYER_INPUT_CHARS = 1000


@dataclass(frozen=True)
class PolicyViolation:
    category: str
    match: str
    position: int


@dataclass(frozen=True)
class InputModeration:
    allowed: bool
    text: str
    reason: str | None = None
    alternative: str | None = None


class ContentPolicy:
    """Stateless content classifier"""

    def scan(self, text: str, age_rating: AgeRating = AgeRating.TEEN) -> list[PolicyViolation]:
        """Every forbidden match in `text` for the rating, in category order"""
        violations = []
        for category in FORBIDDEN_CATEGORIES[AgeRating(age_rating)]:
            for pattern in CONTENT_FILTERS[category]:
                for match in pattern.finditer(text):
                    violations.append(
                        PolicyViolation(category=category, match=match.group(0), position=match.start())
                    )
        return violations

    def redact(self, text: str, age_rating: AgeRating = AgeRating.TEEN) -> str:
        """Replace forbidden matches with their category's placeholder"""
        for category in FORBIDDEN_CATEGORIES[AgeRating(age_rating)]:
            for pattern in CONTENT_FILTERS[category]:
                text = pattern.sub(REDACTIONS[category], text)
        return text

    def image_prompt_findings(self, prompt: str) -> list[str]:
        """Patterns an image prompt trips; these are advisory, not blocking"""
        return [pattern.pattern for pattern in IMAGE_PROMPT_FILTERS if pattern.search(prompt)]

    def moderate_player_input(
        self,
        text: str,
        age_rating: AgeRating = AgeRating.TEEN,
    ) -> InputModeration:
        """Decide whether free-text player input may drive a turn"""
        if self.scan(text, age_rating):
            return InputModeration(
                allowed=False,
                text=text,
                reason="Content violates community guidelines",
                alternative="Please rephrase your action in a more appropriate way",
            )
        if SPAM_PATTERN.search(text):
            return InputModeration(
                allowed=False,
                text=text,
                reason="Spam detected",
                alternative="Please provide a meaningful action",
            )
        if len(text) > MAX_PLAYER_INPUT_CHARS:
            return InputModeration(
                allowed=False,
                text=text,
                reason="Input too long",
                alternative=f"Please keep your action under {MAX_PLAYER_INPUT_CHARS} characters",
            )
        return InputModeration(allowed=True, text=text.strip())
