from unittest.mock import AsyncMock, patch

from fastapi import HTTPException
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from brandlink.utils.rate_limit import check_rate_limit


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.ttl.return_value = 42
    with patch("brandlink.utils.rate_limit.redis_manager") as manager:
        manager.key_prefix = "brandlink:"
        manager.get_redis = AsyncMock(return_value=client)
        yield client


@pytest.mark.asyncio
async def test_first_hit_starts_window(redis_client):
    redis_client.incr.return_value = 1

    await check_rate_limit("10.0.0.1", "login", limit=5, period=300)

    redis_client.incr.assert_awaited_once_with("brandlink:ratelimit:login:10.0.0.1")
    redis_client.expire.assert_awaited_once_with("brandlink:ratelimit:login:10.0.0.1", 300)


@pytest.mark.asyncio
async def test_within_limit_does_not_reset_window(redis_client):
    redis_client.incr.return_value = 5

    await check_rate_limit("10.0.0.1", "login", limit=5, period=300)

    redis_client.expire.assert_not_called()


@pytest.mark.asyncio
async def test_over_limit_raises_429(redis_client):
    redis_client.incr.return_value = 6

    with pytest.raises(HTTPException) as exc_info:
        await check_rate_limit("10.0.0.1", "login", limit=5, period=300)

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "42"}
    assert exc_info.value.detail["retry_after"] == 42


@pytest.mark.asyncio
async def test_missing_ttl_falls_back_to_period(redis_client):
    redis_client.incr.return_value = 6
    redis_client.ttl.return_value = -1

    with pytest.raises(HTTPException) as exc_info:
        await check_rate_limit("10.0.0.1", "api", limit=5, period=60)

    assert exc_info.value.detail["retry_after"] == 60


@pytest.mark.asyncio
async def test_redis_outage_fails_open(redis_client):
    redis_client.incr.side_effect = RedisConnectionError("refused")

    await check_rate_limit("10.0.0.1", "api", limit=5, period=60)
