from unittest.mock import AsyncMock

import pytest

from ussd_gateway.core.errors import SessionBusy
from ussd_gateway.utils.lock import session_lock


@pytest.mark.asyncio
async def test_lock_acquire_and_owner_release():
    r = AsyncMock()
    r.set.return_value = True
    async with session_lock(r, "k:lock", ttl_ms=1000, wait_ms=100):
        pass

    _, kwargs = r.set.call_args
    assert kwargs == {"px": 1000, "nx": True}
    token = r.set.call_args.args[1]
    assert r.eval.call_args.args[1:] == (1, "k:lock", token)


@pytest.mark.asyncio
async def test_lock_spins_then_gives_up():
    r = AsyncMock()
    r.set.return_value = None
    with pytest.raises(SessionBusy):
        async with session_lock(r, "k:lock", ttl_ms=1000, wait_ms=100):
            pass
    assert r.set.await_count >= 2
    r.eval.assert_not_awaited()


@pytest.mark.asyncio
async def test_lock_acquired_after_retry():
    r = AsyncMock()
    r.set.side_effect = [None, None, True]
    async with session_lock(r, "k:lock", ttl_ms=1000, wait_ms=500):
        pass
    assert r.set.await_count == 3


@pytest.mark.asyncio
async def test_failed_release_does_not_raise():
    r = AsyncMock()
    r.set.return_value = True
    r.eval.side_effect = RuntimeError("gone")
    async with session_lock(r, "k:lock"):
        pass
