"""
Session persistence.

A session lives under ``{prefix}:{msisdn}:{sessionId}:{shortcode}`` with a
sliding TTL: every successful load or save re-applies it. Subordinate keys
(``:pin_attempts``, ``:lock``) hang off the same base key and are removed
together with the session.
"""
import asyncio
import inspect
import json
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Callable, Dict, Optional, Tuple

from redis.exceptions import RedisError

from ussd_gateway.core.errors import LockedOut, SessionBusy, StoreUnavailable
from ussd_gateway.observability.logging import log
from ussd_gateway.settings import settings
from ussd_gateway.store.models import Session, SessionKey
from ussd_gateway.utils.lock import session_lock

PIN_SUFFIX = ":pin_attempts"
LOCK_SUFFIX = ":lock"

# KEYS[1]=session KEYS[2]=counter ARGV[1]=ttl ARGV[2]=max
_INCR_PIN = """
local n = redis.call("INCR", KEYS[2])
redis.call("EXPIRE", KEYS[2], ARGV[1])
if n >= tonumber(ARGV[2]) then
    redis.call("DEL", KEYS[1], KEYS[2])
end
return n
"""


def _filter_session_kwargs(data: dict) -> dict:
    """
    Drop unknown fields so Session(**kwargs) never explodes
    """
    allowed = set(inspect.signature(Session).parameters.keys())
    return {k: v for k, v in data.items() if k in allowed}


def dumps(session: Session) -> str:
    return json.dumps(asdict(session), ensure_ascii=False)


def loads(raw: str) -> Session:
    return Session(**_filter_session_kwargs(json.loads(raw)))


class SessionStore:
    """Interface shared by the Redis and in-memory stores."""

    ttl_sec: int
    max_pin_attempts: int

    async def create(self, key: SessionKey, session: Session) -> None:
        await self.save(key, session)

    async def load(self, key: SessionKey) -> Optional[Session]:
        raise NotImplementedError

    async def save(self, key: SessionKey, session: Session) -> None:
        raise NotImplementedError

    async def increment_pin_attempts(self, key: SessionKey) -> int:
        raise NotImplementedError

    async def reset_pin_attempts(self, key: SessionKey) -> None:
        raise NotImplementedError

    async def destroy(self, key: SessionKey) -> None:
        raise NotImplementedError

    def lock(self, key: SessionKey):
        raise NotImplementedError

    async def ping(self) -> bool:
        return True


class RedisSessionStore(SessionStore):
    def __init__(
        self,
        redis,
        prefix: str = None,
        ttl_sec: int = None,
        max_pin_attempts: int = None,
        lock_ttl_ms: int = None,
        lock_wait_ms: int = None,
    ):
        self.redis = redis
        self.prefix = prefix or settings.SESSION_PREFIX
        self.ttl_sec = int(ttl_sec or settings.SESSION_TTL_SEC)
        self.max_pin_attempts = int(max_pin_attempts or settings.MAX_PIN_ATTEMPTS)
        self.lock_ttl_ms = int(lock_ttl_ms or settings.LOCK_TTL_MS)
        self.lock_wait_ms = int(lock_wait_ms or settings.LOCK_WAIT_MS)

    def _key(self, key: SessionKey) -> str:
        return key.redis_key(self.prefix)

    async def load(self, key: SessionKey) -> Optional[Session]:
        k = self._key(key)
        try:
            raw = await self.redis.getex(k, ex=self.ttl_sec)
            if raw:
                await self.redis.expire(k + PIN_SUFFIX, self.ttl_sec)
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e
        if not raw:
            return None
        try:
            return loads(raw)
        except (ValueError, TypeError) as e:
            log(event="session_corrupt", key=k, error=str(e))
            return None

    async def save(self, key: SessionKey, session: Session) -> None:
        try:
            await self.redis.set(self._key(key), dumps(session), ex=self.ttl_sec)
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e

    async def increment_pin_attempts(self, key: SessionKey) -> int:
        k = self._key(key)
        try:
            n = int(await self.redis.eval(_INCR_PIN, 2, k, k + PIN_SUFFIX, self.ttl_sec, self.max_pin_attempts))
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e
        if n >= self.max_pin_attempts:
            raise LockedOut(n)
        return n

    async def reset_pin_attempts(self, key: SessionKey) -> None:
        try:
            await self.redis.delete(self._key(key) + PIN_SUFFIX)
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e

    async def destroy(self, key: SessionKey) -> None:
        k = self._key(key)
        try:
            await self.redis.delete(k, k + PIN_SUFFIX)
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e

    @asynccontextmanager
    async def lock(self, key: SessionKey):
        try:
            async with session_lock(
                self.redis, self._key(key) + LOCK_SUFFIX, ttl_ms=self.lock_ttl_ms, wait_ms=self.lock_wait_ms
            ):
                yield
        except RedisError as e:
            raise StoreUnavailable(str(e)) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False


class MemorySessionStore(SessionStore):
    """
    Single-process store for development and tests.
    Same TTL/lockout semantics as Redis, with an injectable clock (seconds).
    """

    def __init__(
        self,
        ttl_sec: int = None,
        max_pin_attempts: int = None,
        lock_wait_ms: int = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_sec = int(ttl_sec or settings.SESSION_TTL_SEC)
        self.max_pin_attempts = int(max_pin_attempts or settings.MAX_PIN_ATTEMPTS)
        self.lock_wait_ms = int(lock_wait_ms or settings.LOCK_WAIT_MS)
        self.clock = clock
        self._data: Dict[SessionKey, Tuple[str, float]] = {}
        self._pins: Dict[SessionKey, Tuple[int, float]] = {}
        self._locks: Dict[SessionKey, asyncio.Lock] = {}
        # holders plus waiters per key; the lock is dropped when this reaches zero
        self._lock_users: Dict[SessionKey, int] = {}

    def _alive(self, expires_at: float) -> bool:
        return self.clock() < expires_at

    async def load(self, key: SessionKey) -> Optional[Session]:
        entry = self._data.get(key)
        if entry is None or not self._alive(entry[1]):
            self._data.pop(key, None)
            self._pins.pop(key, None)
            return None
        expires = self.clock() + self.ttl_sec
        self._data[key] = (entry[0], expires)
        if key in self._pins:
            self._pins[key] = (self._pins[key][0], expires)
        return loads(entry[0])

    async def save(self, key: SessionKey, session: Session) -> None:
        self._data[key] = (dumps(session), self.clock() + self.ttl_sec)

    async def increment_pin_attempts(self, key: SessionKey) -> int:
        count, expires = self._pins.get(key, (0, 0.0))
        if not self._alive(expires):
            count = 0
        count += 1
        self._pins[key] = (count, self.clock() + self.ttl_sec)
        if count >= self.max_pin_attempts:
            await self.destroy(key)
            raise LockedOut(count)
        return count

    async def reset_pin_attempts(self, key: SessionKey) -> None:
        self._pins.pop(key, None)

    async def destroy(self, key: SessionKey) -> None:
        self._data.pop(key, None)
        self._pins.pop(key, None)

    @asynccontextmanager
    async def lock(self, key: SessionKey):
        lk = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lk.acquire(), timeout=self.lock_wait_ms / 1000.0)
            except asyncio.TimeoutError:
                raise SessionBusy(f"Could not acquire lock for {key}")
            try:
                yield
            finally:
                lk.release()
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                self._locks.pop(key, None)
