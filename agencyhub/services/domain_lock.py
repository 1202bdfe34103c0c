"""
Advisory Redis lock around provisioning of one domain.

The domain reservation constraint is what guarantees uniqueness; this lock
only keeps a second request for the same domain from doing any work while
the first is in flight. If Redis is unreachable provisioning proceeds
without it.
"""
import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from agencyhub.config import settings

logger = logging.getLogger(__name__)

# Delete the key only if we still own it
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DomainLock:
    """Best-effort per-domain lock using SET NX EX."""

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int | None = None,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.PROVISIONING_LOCK_TTL_SECONDS
        self._redis = client

    async def get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    def _key(self, domain: str) -> str:
        return f"provisioning:domain:{domain}"

    async def acquire(self, domain: str) -> str | None:
        """Try to take the lock.

        Returns the owner token, ``""`` if Redis is unavailable, or None if
        another worker holds the lock.
        """
        token = secrets.token_hex(16)
        try:
            client = await self.get_redis()
            acquired = await client.set(self._key(domain), token, nx=True, ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Provisioning lock unavailable for {domain}, continuing without it: {e}")
            return ""
        return token if acquired else None

    async def release(self, domain: str, token: str) -> None:
        if not token:
            return
        try:
            client = await self.get_redis()
            await client.eval(RELEASE_SCRIPT, 1, self._key(domain), token)
        except redis.RedisError as e:
            logger.warning(f"Failed to release provisioning lock for {domain}: {e}")

    @asynccontextmanager
    async def hold(self, domain: str) -> AsyncIterator[bool]:
        """Yield True if this caller may proceed with the domain."""
        token = await self.acquire(domain)
        try:
            yield token is not None
        finally:
            if token:
                await self.release(domain, token)

    async def close(self):
        if self._redis:
            await self._redis.close()
            self._redis = None
