"""
Nonce storage with per-key expiry: an in-process store and a Redis-backed one.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

NONCE_KEY = "siwe:nonce:{}"
SPENT_NONCE_KEY = "siwe:spent:{}"


def nonce_key(attempt_id: str) -> str:
    return NONCE_KEY.format(attempt_id)


def spent_nonce_key(nonce: str) -> str:
    return SPENT_NONCE_KEY.format(nonce)


class NonceStore(ABC):
    """
    Key/value store with per-key expiry.

    An entry must be unreadable once its TTL has elapsed, and `delete` must be
    visible to every later `get` on the same key.
    """

    @abstractmethod
    async def set(self, key: str, ttl_seconds: int, value: str) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True only if this call removed a live entry."""
        ...

    @abstractmethod
    async def add(self, key: str, ttl_seconds: int, value: str) -> bool:
        """Set a key only if it is absent. Returns True if the key was written."""
        ...

    async def close(self) -> None:
        pass


class InMemoryNonceStore(NonceStore):
    """
    Process-local store.
    WARNING: Entries are lost on restart and are not shared across workers.
    Use RedisNonceStore for multi-worker deployments.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def cleanup_expired(self) -> int:
        """Removes expired entries from the store."""
        now = self._clock()
        expired_keys = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired_keys:
            self._entries.pop(key, None)
            logger.debug(f"Expired entry removed: {key}")
        return len(expired_keys)

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, ttl_seconds: int, value: str) -> None:
        self.cleanup_expired()
        self._entries[key] = (value, self._clock() + ttl_seconds)
        logger.debug(f"Stored {key} (ttl={ttl_seconds}s)")

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def delete(self, key: str) -> bool:
        if self._live(key) is None:
            return False
        del self._entries[key]
        return True

    async def add(self, key: str, ttl_seconds: int, value: str) -> bool:
        if self._live(key) is not None:
            return False
        await self.set(key, ttl_seconds, value)
        return True

    def __len__(self) -> int:
        self.cleanup_expired()
        return len(self._entries)


class RedisNonceStore(NonceStore):
    """Redis-backed store. Expiry is delegated to Redis (SET ... EX)."""

    def __init__(self, r: Redis):
        self.r = r

    @classmethod
    def from_url(cls, url: str) -> "RedisNonceStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def set(self, key: str, ttl_seconds: int, value: str) -> None:
        await self.r.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> str | None:
        raw = await self.r.get(key)
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    async def delete(self, key: str) -> bool:
        # DEL reports how many keys it removed, so concurrent consumers see exactly one winner
        return await self.r.delete(key) > 0

    async def add(self, key: str, ttl_seconds: int, value: str) -> bool:
        return bool(await self.r.set(key, value, ex=ttl_seconds, nx=True))

    async def close(self) -> None:
        await self.r.aclose()
