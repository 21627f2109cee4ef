# ABOUTME: Exception definitions for agent layer failures.
# ABOUTME: Defines error types raised by the LLM client, planner and narration generators.


class LLMCallFailed(Exception):
    """Raised when OpenAI API call fails after retries"""
    pass


class NarrationFailed(Exception):
    """Raised when a narration generator cannot produce text"""
    pass


class InvalidLLMResponse(Exception):
    """Raised when the LLM returns content that doesn't match the expected shape"""
    pass
