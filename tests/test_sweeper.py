import asyncio

import pytest

from deviceguard.modules.devices import DeviceStatus
from deviceguard.modules.transfers import FailureReason, TransferState, TransferSweeper

pytestmark = pytest.mark.anyio


async def test_expire_stale_only_touches_overdue_attempts(container, alice, bob, phone, make_device, clock, load_device):
    old = await container.workflow.initiate(alice.id, phone.id, bob.id)
    clock.advance(hours=23)
    tablet = await make_device(alice.id, serial_number="TAB-77")
    fresh = await container.workflow.initiate(alice.id, tablet.id, bob.id)
    clock.advance(hours=1, seconds=1)

    assert await container.workflow.expire_stale() == 1

    expired = await container.workflow.get(old.id, alice.id)
    assert expired.state is TransferState.EXPIRED
    assert expired.failure_reason is FailureReason.TTL_EXPIRED
    device, history = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE
    assert history[-1].actor_id == "system"

    still_open = await container.workflow.get(fresh.id, alice.id)
    assert still_open.state is TransferState.CHALLENGE_ISSUED

    assert await container.workflow.expire_stale() == 0


async def test_sweep_once_drains_in_batches(container, alice, bob, make_device, clock):
    for index in range(3):
        device = await make_device(alice.id, serial_number=f"BATCH{index}")
        await container.workflow.initiate(alice.id, device.id, bob.id)
    clock.advance(days=2)

    sweeper = TransferSweeper(container.workflow, interval=60, batch_size=2)
    assert await sweeper.sweep_once() == 3


async def test_background_loop_runs_and_stops(container, alice, bob, phone, clock):
    attempt = await container.workflow.initiate(alice.id, phone.id, bob.id)
    clock.advance(days=2)

    sweeper = TransferSweeper(container.workflow, interval=0.01)
    sweeper.start()
    assert sweeper.running
    for _ in range(200):
        stored = await container.workflow.list_all(state=TransferState.EXPIRED)
        if stored:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert not sweeper.running
    assert [item.id for item in stored] == [attempt.id]
