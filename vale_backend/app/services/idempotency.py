"""
Idempotency store for money-moving requests.

A client may send an ``Idempotency-Key`` header with POST /sales, /transfers
or /withdrawals. The key (scoped per endpoint and acting user) is reserved in
Redis with SET NX before any work is done:

- the first request wins the reservation, does the work and replaces the
  marker with its response for the TTL;
- a repeat while the marker is still there gets 409 and should retry;
- a repeat after that replays the stored response;
- a failed request releases the reservation so the client can retry.

Redis being unreachable never blocks a request: the key is ignored and a
warning is logged.
"""

import json
import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import IdempotencyConflictError

logger = logging.getLogger("vale.idempotency")

IN_PROGRESS = "__in_progress__"


class IdempotencyService:

    @staticmethod
    def _key(scope: str, key: str) -> str:
        return f"idempotency:{scope}:{key}"

    @staticmethod
    async def begin(redis, scope: str, key: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Reserve ``key`` or return the response stored for it.

        Returns:
            The stored response for a finished request, otherwise None
            (reserved, no key given, or Redis unavailable)

        Raises:
            IdempotencyConflictError: another request holds the reservation
        """
        if not key:
            return None
        redis_key = IdempotencyService._key(scope, key)
        try:
            if await redis.set(redis_key, IN_PROGRESS, nx=True, ex=settings.idempotency_lock_seconds):
                return None
            raw = await redis.get(redis_key)
        except (RedisError, OSError) as exc:
            logger.warning("Idempotency store unavailable, ignoring key %s: %s", key, exc)
            return None

        if isinstance(raw, bytes):
            raw = raw.decode()
        if raw is None or raw == IN_PROGRESS:
            raise IdempotencyConflictError(key)

        logger.info("Replaying stored response for %s key %s", scope, key)
        return json.loads(raw)

    @staticmethod
    async def remember(redis, scope: str, key: Optional[str], payload: Dict[str, Any], ttl_seconds: int = None) -> None:
        if not key:
            return
        try:
            await redis.set(
                IdempotencyService._key(scope, key),
                json.dumps(payload),
                ex=ttl_seconds or settings.idempotency_ttl_seconds,
            )
        except (RedisError, OSError) as exc:
            logger.warning("Could not store response for %s key %s: %s", scope, key, exc)

    @staticmethod
    async def release(redis, scope: str, key: Optional[str]) -> None:
        if not key:
            return
        try:
            await redis.delete(IdempotencyService._key(scope, key))
        except (RedisError, OSError) as exc:
            logger.warning("Could not release %s key %s: %s", scope, key, exc)
