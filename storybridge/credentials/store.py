from __future__ import annotations
import hashlib
import logging
from typing import Dict, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RedisCredentialStore:
    """
    Per-session API key storage in Redis.

    Key schema:
        storybridge:cred:{sha256(session_id)[:32]}

    The session id is hashed so raw session ids never show up in
    `redis-cli --scan`. Values expire after ttl_s (Redis EXPIRE).
    """

    KEY_PREFIX = "storybridge:cred"

    def __init__(self, redis_client: aioredis.Redis, ttl_s: int) -> None:
        self._redis = redis_client
        self._ttl_s = ttl_s

    def _build_key(self, session_id: str) -> str:
        digest = hashlib.sha256(session_id.encode()).hexdigest()[:32]
        return f"{self.KEY_PREFIX}:{digest}"

    async def get(self, session_id: str) -> Optional[str]:
        raw = await self._redis.get(self._build_key(session_id))
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    async def put(self, session_id: str, credential: str) -> None:
        await self._redis.set(self._build_key(session_id), credential, ex=self._ttl_s)
        logger.debug("Stored credential for session %s", self._build_key(session_id))

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._build_key(session_id))

    async def ping(self) -> bool:
        """Health check: returns True if Redis is reachable."""
        try:
            return await self._redis.ping()
        except Exception:
            return False

    @property
    def backend(self) -> str:
        return "redis"


class InMemoryCredentialStore:
    """Process-local store used when Redis is not configured (local dev, tests)."""

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    async def get(self, session_id: str) -> Optional[str]:
        return self._values.get(session_id)

    async def put(self, session_id: str, credential: str) -> None:
        self._values[session_id] = credential

    async def delete(self, session_id: str) -> None:
        self._values.pop(session_id, None)

    async def ping(self) -> bool:
        return True

    @property
    def backend(self) -> str:
        return "memory"
