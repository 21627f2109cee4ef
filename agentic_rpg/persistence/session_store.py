# ABOUTME: Session persistence: an in-memory store and a Redis store with JSON payloads and a TTL.
# ABOUTME: Stores never raise; failures are logged and reported through return values.

import json
from typing import Protocol

from loguru import logger
from pydantic import ValidationError
from redis import Redis, RedisError

from agentic_rpg.models.entities import Session


class SessionStore(Protocol):
    """save/delete return success; load returns None when missing or unreadable"""

    def save(self, session: Session) -> bool: ...

    def load(self, session_id: str) -> Session | None: ...

    def list_sessions(self) -> list[str]: ...

    def delete(self, session_id: str) -> bool: ...


class InMemorySessionStore:
    """Process-local store holding serialized copies of each session"""

    def __init__(self):
        self._sessions: dict[str, str] = {}

    def save(self, session: Session) -> bool:
        self._sessions[session.id] = session.model_dump_json()
        return True

    def load(self, session_id: str) -> Session | None:
        payload = self._sessions.get(session_id)
        if payload is None:
            return None
        return Session.model_validate_json(payload)

    def list_sessions(self) -> list[str]:
        return sorted(self._sessions)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


class RedisSessionStore:
    """
    Sessions stored as JSON strings under `{prefix}{session_id}` with a TTL.

    Session ids are also kept in a set at `{prefix}index` for list_sessions().
    """

    def __init__(self, redis_client: Redis, key_prefix: str = "rpg:session:", ttl_seconds: int = 7 * 24 * 3600):
        """
        Args:
            redis_client: Redis connection for session storage
            key_prefix: Prefix for every key this store writes
            ttl_seconds: Expiry applied to each saved session
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = 7 * 24 * 3600) -> "RedisSessionStore":
        return cls(Redis.from_url(redis_url, decode_responses=True), ttl_seconds=ttl_seconds)

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}index"

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def save(self, session: Session) -> bool:
        try:
            self.redis.set(self._key(session.id), session.model_dump_json(), ex=self.ttl_seconds)
            self.redis.sadd(self.index_key, session.id)
            logger.debug(f"Saved session {session.id} (turn {session.turn_count})")
            return True
        except RedisError as e:
            logger.error(f"Failed to save session {session.id}: {e}")
            return False

    def load(self, session_id: str) -> Session | None:
        try:
            payload = self.redis.get(self._key(session_id))
        except RedisError as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            return None

        if payload is None:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")

        try:
            return Session.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Stored session {session_id} is unreadable: {e}")
            return None

    def list_sessions(self) -> list[str]:
        """Ids of sessions that still exist; expired ids are pruned from the index"""
        try:
            members = self.redis.smembers(self.index_key)
            ids = sorted(m.decode("utf-8") if isinstance(m, bytes) else m for m in members)
            live = []
            for session_id in ids:
                if self.redis.exists(self._key(session_id)):
                    live.append(session_id)
                else:
                    self.redis.srem(self.index_key, session_id)
            return live
        except RedisError as e:
            logger.error(f"Failed to list sessions: {e}")
            return []

    def delete(self, session_id: str) -> bool:
        try:
            removed = self.redis.delete(self._key(session_id))
            self.redis.srem(self.index_key, session_id)
            return bool(removed)
        except RedisError as e:
            logger.error(f"Failed to delete session {session_id}: {e}")
            return False
