from unittest.mock import MagicMock, patch

import pytest

from ussd_gateway.queue.jobs import cleanup_sessions_job

P = "ussd:session"
LIVE = f"{P}:256772123456:S1:217"
ORPHAN = f"{P}:256772000000:S9:217"


def _redis(keys, existing=(), ttls=None):
    r = MagicMock()
    r.scan_iter.return_value = iter(keys)
    r.exists.side_effect = lambda k: int(k in existing)
    r.ttl.side_effect = lambda k: (ttls or {}).get(k, 30)
    r.delete.return_value = 1
    return r


@patch("ussd_gateway.queue.jobs.log")
@patch("ussd_gateway.queue.jobs.get_redis")
def test_removes_orphaned_counters_and_stuck_locks(mock_get_redis, mock_log):
    keys = [
        LIVE,
        LIVE + ":pin_attempts",
        ORPHAN + ":pin_attempts",
        LIVE + ":lock",
        ORPHAN + ":lock",
    ]
    r = _redis(keys, existing={LIVE}, ttls={ORPHAN + ":lock": -1})
    mock_get_redis.return_value = r

    result = cleanup_sessions_job(P)

    assert result == {"scanned": 5, "liveSessions": 1, "removed": 2}
    deleted = sorted(c.args[0] for c in r.delete.call_args_list)
    assert deleted == sorted([ORPHAN + ":pin_attempts", ORPHAN + ":lock"])
    r.scan_iter.assert_called_once_with(match=f"{P}:*", count=500)
    assert mock_log.call_args_list[0].kwargs["event"] == "cleanup_job_start"
    assert mock_log.call_args.kwargs["event"] == "cleanup_job_done"


@patch("ussd_gateway.queue.jobs.log")
@patch("ussd_gateway.queue.jobs.get_redis")
def test_failure_is_logged_and_raised(mock_get_redis, mock_log):
    r = MagicMock()
    r.scan_iter.side_effect = ConnectionError("redis down")
    mock_get_redis.return_value = r

    with pytest.raises(ConnectionError):
        cleanup_sessions_job(P)
    assert mock_log.call_args.kwargs["event"] == "cleanup_job_exception"


@patch("ussd_gateway.queue.jobs.get_redis")
@patch("ussd_gateway.queue.jobs.settings")
def test_default_prefix_comes_from_settings(mock_settings, mock_get_redis):
    mock_settings.SESSION_PREFIX = "custom"
    r = _redis([])
    mock_get_redis.return_value = r
    cleanup_sessions_job()
    r.scan_iter.assert_called_once_with(match="custom:*", count=500)
