# ABOUTME: Unit tests for the age-rating scoped content policy and player input moderation.
# ABOUTME: Covers scanning, redaction, image prompt findings, spam and length limits.

from agentic_rpg.models.entities import AgeRating
from agentic_rpg.validation.content_policy import MAX_PLAYER_INPUT_CHARS, ContentPolicy


class TestScan:
    """Test suite for ContentPolicy.scan and redact"""

    def test_clean_text(self):
        assert ContentPolicy().scan("You greet the barkeep warmly.") == []

    def test_teen_flags_profanity_with_position(self):
        violations = ContentPolicy().scan("Oh damn, the door is locked.", AgeRating.TEEN)
        assert len(violations) == 1
        assert violations[0].category == "profanity"
        assert violations[0].match == "damn"
        assert violations[0].position == 3

    def test_word_boundaries(self):
        """'shell' and 'hello' are not profanity"""
        assert ContentPolicy().scan("A shell rests by the door. Hello there.") == []

    def test_adult_scope(self):
        policy = ContentPolicy()
        assert policy.scan("damn", AgeRating.ADULT) == []
        assert policy.scan("torture", AgeRating.ADULT)[0].category == "explicit"

    def test_redact(self):
        assert ContentPolicy().redact("What the hell is this") == "What the [expletive] is this"

    def test_image_prompt_findings(self):
        assert ContentPolicy().image_prompt_findings("a calm tavern") == []
        assert ContentPolicy().image_prompt_findings("blood on the floor")


class TestModeratePlayerInput:
    """Test suite for ContentPolicy.moderate_player_input"""

    def test_allowed_input_is_stripped(self):
        result = ContentPolicy().moderate_player_input("  I search the room  ")
        assert result.allowed
        assert result.text == "I search the room"

    def test_forbidden_input(self):
        result = ContentPolicy().moderate_player_input("I shout shit at the guard")
        assert not result.allowed
        assert result.reason == "Content violates community guidelines"
        assert result.alternative

    def test_spam(self):
        result = ContentPolicy().moderate_player_input("aaaaaaaaaaaaaaaaaaaa")
        assert not result.allowed
        assert result.reason == "Spam detected"

    def test_too_long(self):
        result = ContentPolicy().moderate_player_input("walk " * (MAX_PLAYER_INPUT_CHARS // 4))
        assert not result.allowed
        assert result.reason == "Input too long"
