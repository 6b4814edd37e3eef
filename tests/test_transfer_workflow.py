import asyncio

import pytest
from sqlalchemy import update

from deviceguard.db.models import Account as AccountModel
from deviceguard.infrastructure.database import session_scope
from deviceguard.modules.devices import (
    DeviceRegistry,
    DeviceStatus,
    InvalidTransitionError,
    NotOwnerError,
    OwnershipMismatchError,
)
from deviceguard.modules.otp import ChallengeManager, OTPExhaustedError, OTPExpiredError, OTPRejectedError
from deviceguard.modules.transfers import (
    AttemptAlreadyTerminalError,
    AttemptExpiredError,
    DeviceNotTransferableError,
    FailureReason,
    InvalidRecipientError,
    InvalidTransferStepError,
    MissingContactChannelError,
    MissingReasonError,
    RecipientNotFoundError,
    ResendTooSoonError,
    TransferReason,
    TransferState,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
def workflow(container):
    return container.workflow


@pytest.fixture
def start(workflow, container, channel, alice, bob, phone):
    async def _start(recipient="b@example.com"):
        attempt = await workflow.initiate(alice.id, phone.id, recipient)
        await container.dispatcher.drain()
        return attempt, channel.last_code

    return _start


@pytest.fixture
def registry_call(container):
    async def _call(method, *args, **kwargs):
        async with session_scope(container.session_factory) as session:
            registry = DeviceRegistry.with_session(session, container.clock)
            return await getattr(registry, method)(*args, **kwargs)

    return _call


def _wrong(code):
    return "ZZZZZZZZ" if code != "ZZZZZZZZ" else "YYYYYYYY"


async def test_gift_transfer_end_to_end(workflow, start, alice, bob, phone, channel, load_device):
    attempt, code = await start()
    assert attempt.state is TransferState.CHALLENGE_ISSUED
    assert attempt.to_owner_id == bob.id
    assert attempt.challenge.destination == "+234********78"
    assert channel.sent == [("+2348012345678", code)]

    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.TRANSFER_PENDING

    attempt = await workflow.verify(attempt.id, alice.id, code)
    assert attempt.state is TransferState.IDENTITY_VERIFIED

    attempt = await workflow.submit_reason(attempt.id, alice.id, "gift")
    assert attempt.state is TransferState.REASON_COLLECTED
    assert attempt.reason_code is TransferReason.GIFT
    assert attempt.custom_reason is None

    attempt = await workflow.complete(attempt.id, alice.id)
    assert attempt.state is TransferState.COMPLETED
    assert attempt.completed_at is not None

    device, history = await load_device(phone.id)
    assert device.owner_id == bob.id
    assert device.status is DeviceStatus.ACTIVE
    statuses = [event.status for event in history]
    assert statuses.index(DeviceStatus.TRANSFER_PENDING) < len(statuses) - 1
    assert history[-1].status is DeviceStatus.ACTIVE
    assert history[-1].actor_id == bob.id


async def test_recipient_can_be_given_by_account_id(start, bob):
    attempt, _ = await start(recipient=bob.id)
    assert attempt.to_owner_id == bob.id


async def test_complete_twice_returns_stored_result(workflow, start, alice, phone, load_device):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    await workflow.submit_reason(attempt.id, alice.id, TransferReason.SOLD)
    first = await workflow.complete(attempt.id, alice.id)
    _, history_before = await load_device(phone.id)

    second = await workflow.complete(attempt.id, alice.id)
    _, history_after = await load_device(phone.id)
    assert second.state is TransferState.COMPLETED
    assert second.completed_at == first.completed_at
    assert len(history_after) == len(history_before)


async def test_resubmitting_reason_on_finished_attempt_returns_it(workflow, start, alice, bob, phone, load_device):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    await workflow.submit_reason(attempt.id, alice.id, "gift")
    first = await workflow.complete(attempt.id, alice.id)
    _, history_before = await load_device(phone.id)

    again = await workflow.submit_reason(attempt.id, alice.id, "sold")
    assert again.state is TransferState.COMPLETED
    assert again.reason_code is TransferReason.GIFT
    assert again.completed_at == first.completed_at
    device, history_after = await load_device(phone.id)
    assert device.owner_id == bob.id
    assert len(history_after) == len(history_before)

    # The new owner offers it back, then changes their mind.
    cancelled = await workflow.initiate(bob.id, phone.id, alice.id)
    await workflow.cancel(cancelled.id, bob.id)
    stored = await workflow.submit_reason(cancelled.id, bob.id, "gift")
    assert stored.state is TransferState.FAILED
    assert stored.failure_reason is FailureReason.CANCELLED
    assert stored.reason_code is None


async def _challenge(container, challenge_id):
    async with session_scope(container.session_factory) as session:
        return await ChallengeManager.with_session(session, container.settings.otp, container.clock).get(
            challenge_id
        )


async def test_concurrent_correct_codes_are_accepted_once(workflow, start, container, alice):
    attempt, code = await start()

    results = await asyncio.gather(
        *(workflow.verify(attempt.id, alice.id, code) for _ in range(4)),
        return_exceptions=True,
    )
    accepted = [item for item in results if not isinstance(item, Exception)]
    errors = [item for item in results if isinstance(item, Exception)]
    assert len(accepted) == 1
    assert accepted[0].state is TransferState.IDENTITY_VERIFIED
    assert all(isinstance(item, InvalidTransferStepError) for item in errors)

    challenge = await _challenge(container, attempt.challenge_id)
    assert challenge.consumed is True
    assert challenge.attempts_remaining == 4


async def test_last_attempt_is_spent_once_under_concurrency(workflow, start, container, alice):
    attempt, code = await start()
    for _ in range(4):
        with pytest.raises(OTPRejectedError):
            await workflow.verify(attempt.id, alice.id, _wrong(code))

    results = await asyncio.gather(
        *(workflow.verify(attempt.id, alice.id, code) for _ in range(3)),
        return_exceptions=True,
    )
    accepted = [item for item in results if not isinstance(item, Exception)]
    assert len(accepted) == 1
    assert accepted[0].state is TransferState.IDENTITY_VERIFIED

    challenge = await _challenge(container, attempt.challenge_id)
    assert challenge.attempts_remaining == 0
    assert challenge.failed_attempts == 4
    assert challenge.consumed is True


async def test_completion_requires_accepted_challenge(workflow, start, alice):
    attempt, _ = await start()
    with pytest.raises(InvalidTransferStepError):
        await workflow.complete(attempt.id, alice.id)
    with pytest.raises(InvalidTransferStepError):
        await workflow.submit_reason(attempt.id, alice.id, "gift")


async def test_five_wrong_codes_fail_the_attempt(workflow, start, alice, phone, load_device):
    attempt, code = await start()
    wrong = _wrong(code)

    for expected_remaining in (4, 3, 2, 1):
        with pytest.raises(OTPRejectedError) as excinfo:
            await workflow.verify(attempt.id, alice.id, wrong)
        assert excinfo.value.attempts_remaining == expected_remaining

    with pytest.raises(OTPExhaustedError):
        await workflow.verify(attempt.id, alice.id, wrong)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.state is TransferState.FAILED
    assert stored.failure_reason is FailureReason.OTP_EXHAUSTED
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE
    assert device.owner_id == alice.id

    # A sixth submission, even the right code, is never evaluated.
    with pytest.raises(OTPExhaustedError):
        await workflow.verify(attempt.id, alice.id, code)


async def test_correct_code_after_expiry_is_expired(workflow, start, alice, phone, clock, load_device):
    attempt, code = await start()
    clock.advance(seconds=601)

    with pytest.raises(OTPExpiredError):
        await workflow.verify(attempt.id, alice.id, code)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.state is TransferState.EXPIRED
    assert stored.failure_reason is FailureReason.OTP_EXPIRED
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE

    with pytest.raises(OTPExpiredError):
        await workflow.verify(attempt.id, alice.id, code)


async def test_concurrent_initiations_admit_exactly_one(workflow, alice, bob, phone):
    results = await asyncio.gather(
        workflow.initiate(alice.id, phone.id, "b@example.com"),
        workflow.initiate(alice.id, phone.id, bob.id),
        return_exceptions=True,
    )
    errors = [item for item in results if isinstance(item, Exception)]
    attempts = [item for item in results if not isinstance(item, Exception)]
    assert len(attempts) == 1
    assert len(errors) == 1 and isinstance(errors[0], DeviceNotTransferableError)


async def test_other_reason_needs_a_description(workflow, start, alice):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)

    with pytest.raises(MissingReasonError):
        await workflow.submit_reason(attempt.id, alice.id, "other", "   ")
    assert (await workflow.get(attempt.id, alice.id)).state is TransferState.IDENTITY_VERIFIED

    attempt = await workflow.submit_reason(attempt.id, alice.id, "other", "  swapped for a laptop ")
    assert attempt.reason_code is TransferReason.OTHER
    assert attempt.custom_reason == "swapped for a laptop"


async def test_custom_text_is_dropped_for_listed_reasons(workflow, start, alice):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    attempt = await workflow.submit_reason(attempt.id, alice.id, "transfer_ownership", "ignored")
    assert attempt.custom_reason is None


async def test_unknown_reason_code(workflow, start, alice):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    with pytest.raises(MissingReasonError):
        await workflow.submit_reason(attempt.id, alice.id, "stolen")


async def test_only_the_owner_can_initiate(workflow, alice, bob, phone, load_device):
    with pytest.raises(NotOwnerError):
        await workflow.initiate(bob.id, phone.id, alice.id)
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE
    assert await workflow.list_for_account(alice.id) == []


async def test_reported_device_cannot_be_transferred(workflow, alice, phone, registry_call):
    await registry_call("set_status", phone.id, DeviceStatus.REPORTED_STOLEN, alice.id)
    with pytest.raises(DeviceNotTransferableError):
        await workflow.initiate(alice.id, phone.id, "b@example.com")


async def test_recipient_validation(workflow, alice, bob, phone, make_account, make_device):
    with pytest.raises(RecipientNotFoundError):
        await workflow.initiate(alice.id, phone.id, "nobody@example.com")
    with pytest.raises(InvalidRecipientError):
        await workflow.initiate(alice.id, phone.id, "alice@example.com")

    carol = await make_account("carol")
    tablet = await make_device(carol.id, serial_number="TAB-001")
    with pytest.raises(MissingContactChannelError):
        await workflow.initiate(carol.id, tablet.id, bob.id)


async def test_inactive_recipient_is_not_found(workflow, alice, phone, make_account):
    await make_account("dave", email="dave@example.com", is_active=False)
    with pytest.raises(RecipientNotFoundError):
        await workflow.initiate(alice.id, phone.id, "dave@example.com")


async def test_cancel_releases_the_device(workflow, start, alice, phone, load_device):
    attempt, code = await start()
    cancelled = await workflow.cancel(attempt.id, alice.id)
    assert cancelled.state is TransferState.FAILED
    assert cancelled.failure_reason is FailureReason.CANCELLED

    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE

    with pytest.raises(AttemptAlreadyTerminalError):
        await workflow.cancel(attempt.id, alice.id)
    with pytest.raises(AttemptAlreadyTerminalError):
        await workflow.verify(attempt.id, alice.id, code)

    # The device can be offered again straight away.
    again = await workflow.initiate(alice.id, phone.id, "b@example.com")
    assert again.id != attempt.id


async def test_attempt_expires_after_its_window(workflow, start, alice, phone, clock, load_device):
    attempt, code = await start()
    clock.advance(hours=24, seconds=1)

    with pytest.raises(AttemptExpiredError):
        await workflow.verify(attempt.id, alice.id, code)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.state is TransferState.EXPIRED
    assert stored.failure_reason is FailureReason.TTL_EXPIRED
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE


async def test_get_expires_a_stale_attempt(workflow, start, alice, phone, clock, load_device):
    attempt, _ = await start()
    clock.advance(days=2)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.state is TransferState.EXPIRED
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE


async def test_resend_honours_cooldown_and_replaces_code(workflow, start, container, channel, alice, clock):
    attempt, first_code = await start()

    with pytest.raises(ResendTooSoonError) as excinfo:
        await workflow.resend(attempt.id, alice.id)
    assert 0 < excinfo.value.retry_after_seconds <= 30

    clock.advance(seconds=31)
    resent = await workflow.resend(attempt.id, alice.id)
    await container.dispatcher.drain()
    second_code = channel.last_code
    assert resent.challenge_id != attempt.challenge_id
    assert len(channel.sent) == 2

    if second_code != first_code:
        with pytest.raises(OTPRejectedError):
            await workflow.verify(attempt.id, alice.id, first_code)
    verified = await workflow.verify(attempt.id, alice.id, second_code)
    assert verified.state is TransferState.IDENTITY_VERIFIED

    with pytest.raises(InvalidTransferStepError):
        await workflow.resend(attempt.id, alice.id)


async def test_status_change_before_commit_fails_the_attempt(
    workflow, start, alice, phone, registry_call, load_device
):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    await workflow.submit_reason(attempt.id, alice.id, "gift")

    # Out-of-band release by the registry itself.
    await registry_call("set_status", phone.id, DeviceStatus.ACTIVE, alice.id)
    await registry_call("set_status", phone.id, DeviceStatus.REPORTED_STOLEN, alice.id)

    with pytest.raises(InvalidTransitionError):
        await workflow.complete(attempt.id, alice.id)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.state is TransferState.FAILED
    assert stored.failure_reason is FailureReason.INVALID_TRANSITION
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.REPORTED_STOLEN
    assert device.owner_id == alice.id


async def test_owner_change_before_commit_is_a_mismatch(
    workflow, start, alice, phone, make_account, registry_call, load_device
):
    carol = await make_account("carol", email="carol@example.com")
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    await workflow.submit_reason(attempt.id, alice.id, "sold")

    await registry_call("transfer_ownership", phone.id, alice.id, carol.id)

    with pytest.raises(OwnershipMismatchError):
        await workflow.complete(attempt.id, alice.id)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.failure_reason is FailureReason.OWNERSHIP_MISMATCH
    device, _ = await load_device(phone.id)
    assert device.owner_id == carol.id
    assert device.status is DeviceStatus.TRANSFERRED


async def test_recipient_disabled_before_commit(workflow, start, container, alice, bob, phone, load_device):
    attempt, code = await start()
    await workflow.verify(attempt.id, alice.id, code)
    await workflow.submit_reason(attempt.id, alice.id, "gift")

    async with session_scope(container.session_factory) as session:
        await session.execute(
            update(AccountModel).where(AccountModel.id == bob.id).values(is_active=False)
        )

    with pytest.raises(RecipientNotFoundError):
        await workflow.complete(attempt.id, alice.id)

    stored = await workflow.get(attempt.id, alice.id)
    assert stored.failure_reason is FailureReason.RECIPIENT_UNAVAILABLE
    device, _ = await load_device(phone.id)
    assert device.status is DeviceStatus.ACTIVE
    assert device.owner_id == alice.id


async def test_only_the_sender_drives_the_attempt(workflow, start, alice, bob, make_account):
    attempt, code = await start()
    with pytest.raises(NotOwnerError):
        await workflow.verify(attempt.id, bob.id, code)
    with pytest.raises(NotOwnerError):
        await workflow.cancel(attempt.id, bob.id)

    # The recipient may look, an unrelated account may not.
    assert (await workflow.get(attempt.id, bob.id)).id == attempt.id
    carol = await make_account("carol")
    with pytest.raises(NotOwnerError):
        await workflow.get(attempt.id, carol.id)
    assert await workflow.get(attempt.id, carol.id, is_admin=True)


async def test_listings(workflow, start, alice, bob):
    attempt, _ = await start()
    assert [item.id for item in await workflow.list_for_account(alice.id)] == [attempt.id]
    assert [item.id for item in await workflow.list_for_account(bob.id)] == [attempt.id]
    assert [item.id for item in await workflow.list_all(state=TransferState.CHALLENGE_ISSUED)] == [attempt.id]
    assert await workflow.list_all(state=TransferState.COMPLETED) == []
