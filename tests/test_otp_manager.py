import asyncio
import logging
from datetime import timedelta

import pytest

from deviceguard.core.config import OtpSettings
from deviceguard.core.locks import challenge_key
from deviceguard.infrastructure.database import session_scope
from deviceguard.infrastructure.database.repositories.challenge_repository import SqlChallengeRepository
from deviceguard.infrastructure.database.repositories.transfer_repository import SqlTransferRepository
from deviceguard.modules.otp import (
    ChallengeManager,
    DeliveryAck,
    DeliveryDispatcher,
    DeliveryError,
    IssuedChallenge,
    VerifyResult,
    generate_code,
    mask_destination,
    normalize_submission,
)
from deviceguard.modules.otp.manager import CODE_ALPHABET

pytestmark = pytest.mark.anyio


@pytest.fixture
async def attempt_id(container, alice, bob, phone):
    async with session_scope(container.session_factory) as session:
        attempt = await SqlTransferRepository(session).create(
            device_id=phone.id,
            from_owner_id=alice.id,
            to_owner_ref=bob.email,
            to_owner_id=bob.id,
            created_at=container.clock(),
            expires_at=container.clock() + timedelta(days=1),
        )
    return attempt.id


@pytest.fixture
def otp(container):
    async def _call(method, *args):
        async with session_scope(container.session_factory) as session:
            manager = ChallengeManager.with_session(session, container.settings.otp, container.clock)
            return await getattr(manager, method)(*args)

    return _call


@pytest.fixture
async def issued(otp, attempt_id):
    return await otp("issue", attempt_id, "+2348012345678")


async def test_issue_records_masked_destination(issued, clock):
    challenge = issued.challenge
    assert len(challenge.code) == 8
    assert set(challenge.code) <= set(CODE_ALPHABET)
    assert challenge.destination == "+234********78"
    assert issued.contact == "+2348012345678"
    assert challenge.attempts_remaining == 5
    assert challenge.expires_at == clock() + timedelta(seconds=600)
    assert challenge.code not in repr(challenge)


async def test_correct_code_is_accepted_once(otp, issued):
    code = issued.challenge.code
    submitted = f" {code[:4].lower()}-{code[4:].lower()} "

    outcome = await otp("verify", issued.challenge.id, submitted)
    assert outcome.result is VerifyResult.ACCEPTED
    assert outcome.attempts_remaining == 4

    again = await otp("verify", issued.challenge.id, code)
    assert again.result is VerifyResult.REJECTED
    stored = await otp("get", issued.challenge.id)
    assert stored.consumed is True
    assert stored.attempts_remaining == 4


async def test_five_wrong_codes_exhaust_the_challenge(otp, issued):
    challenge_id = issued.challenge.id
    wrong = "ZZZZZZZZ" if issued.challenge.code != "ZZZZZZZZ" else "YYYYYYYY"

    results = [await otp("verify", challenge_id, wrong) for _ in range(5)]
    assert [item.result for item in results] == [VerifyResult.REJECTED] * 4 + [VerifyResult.EXHAUSTED]
    assert [item.attempts_remaining for item in results] == [4, 3, 2, 1, 0]

    sixth = await otp("verify", challenge_id, issued.challenge.code)
    assert sixth.result is VerifyResult.EXHAUSTED
    stored = await otp("get", challenge_id)
    assert stored.failed_attempts == 5
    assert stored.consumed is False


@pytest.fixture
def locked_verify(container, otp):
    async def _verify(challenge_id, code):
        async with container.locks.hold(challenge_key(challenge_id)):
            return await otp("verify", challenge_id, code)

    return _verify


async def test_concurrent_correct_codes_accept_once(otp, issued, locked_verify):
    challenge = issued.challenge

    outcomes = await asyncio.gather(*(locked_verify(challenge.id, challenge.code) for _ in range(4)))
    results = [item.result for item in outcomes]
    assert results.count(VerifyResult.ACCEPTED) == 1
    assert results.count(VerifyResult.REJECTED) == 3

    stored = await otp("get", challenge.id)
    assert stored.consumed is True
    assert stored.attempts_remaining == 4


async def test_concurrent_wrong_codes_spend_the_last_attempt_once(otp, issued, locked_verify):
    challenge = issued.challenge
    wrong = "ZZZZZZZZ" if challenge.code != "ZZZZZZZZ" else "YYYYYYYY"
    for _ in range(4):
        await otp("verify", challenge.id, wrong)

    outcomes = await asyncio.gather(*(locked_verify(challenge.id, wrong) for _ in range(3)))
    assert [item.result for item in outcomes] == [VerifyResult.EXHAUSTED] * 3

    stored = await otp("get", challenge.id)
    assert stored.attempts_remaining == 0
    assert stored.failed_attempts == 5


async def test_stale_version_write_is_refused(container, otp, issued):
    challenge = issued.challenge
    await otp("verify", challenge.id, challenge.code)

    async with session_scope(container.session_factory) as session:
        written = await SqlChallengeRepository(session).compare_and_set(
            challenge.id, challenge.version, attempts_remaining=challenge.attempts_remaining
        )
    assert written is False
    stored = await otp("get", challenge.id)
    assert stored.attempts_remaining == 4


async def test_wrong_length_still_costs_an_attempt(otp, issued):
    outcome = await otp("verify", issued.challenge.id, issued.challenge.code[:7])
    assert outcome.result is VerifyResult.REJECTED
    assert outcome.attempts_remaining == 4


async def test_correct_code_after_expiry_is_expired(otp, issued, clock):
    clock.advance(seconds=601)
    outcome = await otp("verify", issued.challenge.id, issued.challenge.code)
    assert outcome.result is VerifyResult.EXPIRED
    assert outcome.attempts_remaining == 5

    stored = await otp("get", issued.challenge.id)
    assert stored.invalidated_at is not None
    assert stored.consumed is False


async def test_code_is_still_valid_at_the_expiry_instant(otp, issued, clock):
    clock.advance(seconds=600)
    outcome = await otp("verify", issued.challenge.id, issued.challenge.code)
    assert outcome.result is VerifyResult.ACCEPTED


async def test_invalidated_challenge_reports_expired(otp, issued):
    await otp("invalidate", issued.challenge.id)
    outcome = await otp("verify", issued.challenge.id, issued.challenge.code)
    assert outcome.result is VerifyResult.EXPIRED


async def test_reissue_yields_independent_codes(otp, attempt_id):
    first = await otp("issue", attempt_id, "alice@example.com")
    second = await otp("issue", attempt_id, "alice@example.com")
    assert first.challenge.id != second.challenge.id
    assert first.challenge.destination == "a***e@example.com"


def test_generate_code_uses_uppercase_alphanumerics():
    codes = {generate_code() for _ in range(50)}
    assert len(codes) > 1
    for code in codes:
        assert len(code) == 8
        assert code.isalnum() and code == code.upper()


def test_normalize_submission():
    assert normalize_submission(" ab-12 cd34 ") == "AB12CD34"
    assert normalize_submission("") == ""


@pytest.mark.parametrize(
    ("contact", "masked"),
    [
        ("+2348012345678", "+234********78"),
        ("08012345678", "08*******78"),
        ("alice@example.com", "a***e@example.com"),
        ("al@example.com", "a*@example.com"),
        ("1234", "****"),
    ],
)
def test_mask_destination(contact, masked):
    assert mask_destination(contact) == masked


def test_otp_settings_pin_code_length():
    with pytest.raises(ValueError):
        OtpSettings(code_length=6)


class _SlowChannel:
    name = "slow"

    async def send(self, destination, code):
        await asyncio.sleep(1)
        return DeliveryAck(message_id="late", channel=self.name)


class _FailingChannel:
    name = "failing"

    async def send(self, destination, code):
        raise DeliveryError("provider rejected the message")


async def test_dispatcher_survives_slow_and_failing_channels(issued, caplog):
    caplog.set_level(logging.WARNING, logger="deviceguard.modules.otp.delivery")
    for channel in (_SlowChannel(), _FailingChannel()):
        dispatcher = DeliveryDispatcher(channel, timeout=0.05)
        task = dispatcher.dispatch(issued)
        await dispatcher.drain()
        assert task.done() and task.exception() is None
        assert dispatcher.pending == 0

    messages = " ".join(record.getMessage() for record in caplog.records)
    assert "timed out" in messages
    assert "provider rejected the message" in messages
    assert issued.challenge.code not in messages


async def test_dispatcher_hands_code_to_channel(issued, channel):
    dispatcher = DeliveryDispatcher(channel, timeout=1)
    dispatcher.dispatch(IssuedChallenge(challenge=issued.challenge, contact="+2348012345678"))
    await dispatcher.drain()
    assert channel.sent[-1] == ("+2348012345678", issued.challenge.code)
