import asyncio
import secrets
from contextlib import asynccontextmanager

from ussd_gateway.core.errors import SessionBusy
from ussd_gateway.observability.logging import log

_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_SPIN_SEC = 0.05


@asynccontextmanager
async def session_lock(redis, key: str, ttl_ms: int = 45000, wait_ms: int = 1500):
    """
    Distributed lock to ensure single-writer per session key.
    SET NX PX, short spin up to wait_ms, owner-only release.
    """
    token = secrets.token_hex(16)
    acquired = await redis.set(key, token, px=ttl_ms, nx=True)

    waited = 0.0
    while not acquired and waited * 1000 < wait_ms:
        await asyncio.sleep(_SPIN_SEC)
        waited += _SPIN_SEC
        acquired = await redis.set(key, token, px=ttl_ms, nx=True)

    if not acquired:
        raise SessionBusy(f"Could not acquire lock {key}")

    try:
        yield
    finally:
        try:
            await redis.eval(_RELEASE, 1, key, token)
        except Exception as e:
            # The lock still expires on its own after ttl_ms.
            log(event="lock_release_failed", key=key, error=str(e))
