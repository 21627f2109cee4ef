"""Session and content storage"""

from .content_store import ContentStore, KeywordMatches, LorebookContentStore
from .exceptions import ContentNotFound, InvalidContentFile
from .session_store import InMemorySessionStore, RedisSessionStore, SessionStore

__all__ = [
    # Content
    "ContentStore",
    "KeywordMatches",
    "LorebookContentStore",
    # Sessions
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    # Exceptions
    "ContentNotFound",
    "InvalidContentFile",
]
