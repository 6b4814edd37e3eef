import asyncio

import pytest

from deviceguard.core.locks import KeyedLock, device_key
from deviceguard.modules.common.exceptions import LockTimeoutError

pytestmark = pytest.mark.anyio


async def test_hold_serializes_same_key():
    locks = KeyedLock(acquire_timeout=1.0)
    order = []

    async def worker(name):
        async with locks.hold("device:1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


async def test_different_keys_do_not_block_each_other():
    locks = KeyedLock(acquire_timeout=0.2)
    async with locks.hold("device:1"):
        async with locks.hold("device:2"):
            assert locks.is_locked("device:1")
            assert locks.is_locked("device:2")


async def test_acquire_timeout_raises_lock_timeout():
    locks = KeyedLock(acquire_timeout=0.05)
    async with locks.hold(device_key("x")):
        with pytest.raises(LockTimeoutError) as excinfo:
            async with locks.hold(device_key("x")):
                pass
    assert excinfo.value.key == "device:x"
    assert excinfo.value.to_detail()["code"] == "lock_timeout"


async def test_idle_locks_are_released():
    locks = KeyedLock()
    async with locks.hold("device:1"):
        assert len(locks) == 1
    assert len(locks) == 0
    assert not locks.is_locked("device:1")
