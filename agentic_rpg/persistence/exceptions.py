# ABOUTME: Exception definitions for content and session persistence.
# ABOUTME: Defines error types raised by content stores; session stores never raise.


class ContentNotFound(KeyError):
    """Raised when a scene, location or NPC id is not in the content store"""
    pass


class InvalidContentFile(ValueError):
    """Raised when a lorebook JSON file can't be parsed into content records"""
    pass
