import logging
import time
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from lugha.core.config import settings
from lugha.core.security import extract_bearer_token, user_id_from_token
from lugha.services.redis_cache import redis_cache

logger = logging.getLogger("lugha.rate_limit")


class RateLimiter:
    """
    Redis-backed fixed-window rate limiter.

    Identity: user id from a valid access token when present, otherwise client IP.
    Behavior: fail-closed (deny) if Redis is unavailable or errors occur.
    """

    def __init__(self, window_seconds: int, global_limit: int, per_identity_limit: int, fail_closed: bool = True):
        self.window_seconds = window_seconds
        self.global_limit = global_limit
        self.per_identity_limit = per_identity_limit
        self.fail_closed = fail_closed

    def _window_key(self, prefix: str, window_start: int, suffix: str | None = None) -> str:
        if suffix:
            return f"lugha:rate:{prefix}:{suffix}:{window_start}"
        return f"lugha:rate:{prefix}:{window_start}"

    async def allow(self, identity: str) -> bool:
        """
        Check and increment rate limits for the given identity.
        Returns True if within limits, False if exceeded or if storage errors when fail_closed is True.
        """
        if not redis_cache.is_available or not redis_cache.client:
            logger.error("Rate limiting storage unavailable")
            return not self.fail_closed

        now = int(time.time())
        window_start = (now // self.window_seconds) * self.window_seconds
        ttl = self.window_seconds + 1

        global_key = self._window_key("global", window_start)
        identity_key = self._window_key("identity", window_start, identity)

        try:
            pipe = redis_cache.client.pipeline()
            pipe.incr(global_key)
            pipe.expire(global_key, ttl)
            pipe.incr(identity_key)
            pipe.expire(identity_key, ttl)
            results: list[Any] = await pipe.execute()
        except Exception as e:
            logger.error("Rate limit check failed: %s", e)
            return not self.fail_closed

        global_count, identity_count = results[0], results[2]
        return global_count <= self.global_limit and identity_count <= self.per_identity_limit

    def retry_after(self) -> int:
        """Seconds until the current window ends."""
        remaining = self.window_seconds - (int(time.time()) % self.window_seconds)
        return remaining if remaining > 0 else self.window_seconds


limiter = RateLimiter(
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    global_limit=settings.RATE_LIMIT_GLOBAL_PER_MINUTE,
    per_identity_limit=settings.RATE_LIMIT_PER_USER_PER_MINUTE,
    fail_closed=True,
)


def request_identity(request: Request) -> str:
    """Rate-limit identity: "user:<id>" for a valid token, else the client IP."""
    user_id = user_id_from_token(extract_bearer_token(request.headers.get("Authorization")))
    if user_id is not None:
        return f"user:{user_id}"
    return request.client.host if request.client else "unknown"


async def allow_relay_message(identity: str) -> bool:
    """
    Rate check for one inbound relay "message" event.

    Socket frames count against the same per-identity budget as API requests.
    Always allowed when rate limiting is disabled.
    """
    if not settings.ENABLE_RATE_LIMITING:
        return True
    return await limiter.allow(identity)


async def rate_limit_middleware(request: Request, call_next):
    """
    FastAPI middleware applying global + per-identity rate limiting to API routes.
    The WebSocket upgrade is outside the API prefix; its message events are
    counted by the relay through allow_relay_message.
    """
    if not settings.ENABLE_RATE_LIMITING or not request.url.path.startswith(settings.API_PREFIX):
        return await call_next(request)

    if not await limiter.allow(request_identity(request)):
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded. Please retry later."},
            headers={"Retry-After": str(limiter.retry_after())},
        )

    return await call_next(request)
