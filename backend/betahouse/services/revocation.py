"""Revoked-token list kept in Redis.

Each entry is ``blacklist:<token>`` with a TTL equal to the token's
remaining lifetime, so the entry disappears exactly when the token would
have stopped working anyway and no cleanup job is needed.
"""

import time

from core.errors import DownstreamDegraded
from core.logging import logger
from core.result import Err, Ok, Result
from redis.asyncio import Redis
from redis.exceptions import RedisError

KEY_PREFIX = "blacklist:"


class RevokedTokenStore:
    provider = "redis"

    def __init__(self, cache: Redis):
        self.cache = cache

    @staticmethod
    def key(token: str) -> str:
        return f"{KEY_PREFIX}{token}"

    async def add(self, token: str, expires_at: int) -> Result[bool]:
        """Blacklist `token` until its own expiry.

        Args:
            token: The encoded token.
            expires_at: The token's `exp` claim (unix seconds).

        Returns:
            Result[bool]: ``Ok(True)`` when stored, ``Ok(False)`` when the
                token had already expired, ``Err`` when Redis is unreachable.
        """
        ttl = int(expires_at - time.time())
        if ttl <= 0:
            return Ok(False)
        try:
            await self.cache.set(self.key(token), "revoked", ex=ttl)
        except RedisError as exc:
            logger.warning("Could not blacklist token: {}", exc)
            return Err(DownstreamDegraded(self.provider, str(exc)))
        return Ok(True)

    async def contains(self, token: str) -> bool:
        """Return True if `token` is blacklisted.

        An unreachable cache is reported as "not revoked" and logged; refresh
        additionally requires a live session row, which revocation deletes.
        """
        try:
            return await self.cache.get(self.key(token)) is not None
        except RedisError as exc:
            logger.warning("Revocation check degraded, cache unavailable: {}", exc)
            return False
