"""Fixed-window rate limiting on top of Redis counters."""

from fastapi import HTTPException, Request, status
from redis.exceptions import RedisError

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.managers.redis_manager import redis_manager
from brandlink.utils.logging_utils import get_client_ip

logger = get_logger(prefix="[RateLimit]")


async def check_rate_limit(identifier: str, operation: str, limit: int, period: int) -> None:
    """
    Count one request for `identifier`/`operation` and reject it past `limit`.

    The counter key expires `period` seconds after the first hit in a window. Redis
    failures are logged and never block the request.

    Raises:
        HTTPException: 429 with retry information when the limit is exceeded.
    """
    key = f"{redis_manager.key_prefix}ratelimit:{operation}:{identifier}"

    try:
        redis = await redis_manager.get_redis()
        current = await redis.incr(key)
        if current == 1:
            await redis.expire(key, period)

        if current > limit:
            retry_after = await redis.ttl(key)
            retry_after = retry_after if retry_after and retry_after > 0 else period
            logger.warning(
                "Rate limit exceeded for %s: operation %s, count %d/%d", identifier, operation, current, limit
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "rate_limit_exceeded",
                    "limit": limit,
                    "period": period,
                    "retry_after": retry_after,
                    "message": f"Rate limit exceeded. Try again in {retry_after} seconds.",
                },
                headers={"Retry-After": str(retry_after)},
            )
    except RedisError as e:
        logger.error("Error checking rate limit for %s: %s", identifier, e)


async def login_rate_limit(request: Request) -> None:
    """Dependency limiting login attempts per client IP."""
    await check_rate_limit(
        get_client_ip(request),
        "login",
        settings.LOGIN_RATE_LIMIT,
        settings.LOGIN_RATE_LIMIT_PERIOD_SECONDS,
    )


async def api_rate_limit(request: Request) -> None:
    """Dependency applying the global per-IP request limit."""
    await check_rate_limit(
        get_client_ip(request),
        "api",
        settings.RATE_LIMIT_REQUESTS,
        settings.RATE_LIMIT_PERIOD_SECONDS,
    )
