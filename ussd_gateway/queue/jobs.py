from ussd_gateway.observability.logging import log
from ussd_gateway.settings import settings
from ussd_gateway.store.redis_conn import get_redis
from ussd_gateway.store.session_repo import LOCK_SUFFIX, PIN_SUFFIX


def cleanup_sessions_job(prefix: str = None) -> dict:
    """
    Background job: sweep subordinate keys left behind by expired sessions.

    Sessions expire on their own TTL. A pin-attempt counter whose session is
    gone is removed; a lock key is removed only if it somehow lost its expiry,
    since a live lock may legitimately precede its session's first save.
    """
    prefix = prefix or settings.SESSION_PREFIX
    r = get_redis()
    scanned = live = removed = 0
    try:
        log(event="cleanup_job_start", prefix=prefix)
        for key in r.scan_iter(match=f"{prefix}:*", count=500):
            scanned += 1
            if key.endswith(PIN_SUFFIX):
                if not r.exists(key[: -len(PIN_SUFFIX)]):
                    removed += int(r.delete(key) or 0)
            elif key.endswith(LOCK_SUFFIX):
                if r.ttl(key) == -1:
                    removed += int(r.delete(key) or 0)
            else:
                live += 1
    except Exception as e:
        log(event="cleanup_job_exception", prefix=prefix, error=str(e))
        raise

    result = {"scanned": scanned, "liveSessions": live, "removed": removed}
    log(event="cleanup_job_done", **result)
    return result
