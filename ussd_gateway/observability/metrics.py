"""
Request/backend counters and latency samples.

Backed by Redis (INCR, LPUSH+LTRIM) when a client is given, otherwise kept
in-process. Recording never raises into the request path.
"""
from __future__ import annotations

from collections import Counter
from typing import List

from ussd_gateway.observability.logging import log

K_REQUESTS = "metrics:ussd:requests"
K_SESSIONS = "metrics:ussd:sessions_created"
K_LOCKOUTS = "metrics:ussd:lockouts"
K_DUPLICATES = "metrics:ussd:duplicates_suppressed"
K_ERRORS = "metrics:ussd:errors"
K_BACKEND = "metrics:backend:{kind}"
K_BACKEND_LAT = "metrics:backend:latencies"

_MAX_SAMPLES = 500


def _percentile(data: List[float], p: float) -> float:
    """Nearest-rank on sorted data."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])


class Metrics:
    def __init__(self, redis=None, enabled: bool = True):
        self.redis = redis
        self.enabled = enabled
        self._counts: Counter = Counter()
        self._latencies: List[int] = []

    async def _incr(self, key: str) -> None:
        if not self.enabled:
            return
        if self.redis is None:
            self._counts[key] += 1
            return
        try:
            await self.redis.incr(key, 1)
        except Exception as e:
            log(event="metrics_write_failed", key=key, error=str(e))

    async def request(self) -> None:
        await self._incr(K_REQUESTS)

    async def session_created(self) -> None:
        await self._incr(K_SESSIONS)

    async def lockout(self) -> None:
        await self._incr(K_LOCKOUTS)

    async def duplicate_suppressed(self) -> None:
        await self._incr(K_DUPLICATES)

    async def error(self) -> None:
        await self._incr(K_ERRORS)

    async def backend_call(self, kind: str, ms: int) -> None:
        await self._incr(K_BACKEND.format(kind=kind))
        if not self.enabled:
            return
        ms = int(ms)
        if self.redis is None:
            self._latencies.insert(0, ms)
            del self._latencies[_MAX_SAMPLES:]
            return
        try:
            await self.redis.lpush(K_BACKEND_LAT, ms)
            await self.redis.ltrim(K_BACKEND_LAT, 0, _MAX_SAMPLES - 1)
        except Exception as e:
            log(event="metrics_write_failed", key=K_BACKEND_LAT, error=str(e))

    async def _count(self, key: str) -> int:
        if self.redis is None:
            return int(self._counts.get(key, 0))
        return int(await self.redis.get(key) or 0)

    async def _latency_samples(self) -> List[float]:
        if self.redis is None:
            raw: list = list(self._latencies)
        else:
            raw = await self.redis.lrange(K_BACKEND_LAT, 0, _MAX_SAMPLES - 1) or []
        out: List[float] = []
        for x in raw:
            try:
                out.append(float(x) / 1000.0)
            except (TypeError, ValueError):
                continue
        return out

    async def snapshot(self) -> dict:
        lat = await self._latency_samples()
        backend = {}
        for kind in ("success", "business_failure", "transport_failure"):
            backend[kind] = await self._count(K_BACKEND.format(kind=kind))
        return {
            "requests": await self._count(K_REQUESTS),
            "sessions_created": await self._count(K_SESSIONS),
            "lockouts": await self._count(K_LOCKOUTS),
            "duplicates_suppressed": await self._count(K_DUPLICATES),
            "errors": await self._count(K_ERRORS),
            "backend_calls": backend,
            "p50_backend_latency": round(_percentile(lat, 0.50), 3),
            "p95_backend_latency": round(_percentile(lat, 0.95), 3),
        }


def null_metrics() -> Metrics:
    return Metrics(redis=None, enabled=False)
