from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from ussd_gateway.settings import settings


def get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)


def get_async_redis() -> AsyncRedis:
    return AsyncRedis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_TIMEOUT_SEC,
        socket_connect_timeout=settings.REDIS_TIMEOUT_SEC,
    )
