"""Ownership transfer workflow.

A transfer walks ``initiated -> challenge_issued -> identity_verified ->
reason_collected -> completed`` and may drop out to ``failed`` or ``expired``
from any open state. Every step runs under the per-device lock and inside a
single database transaction, so the attempt record, the device status and the
challenge either all move together or not at all.

Errors that describe a change already made (a rejected code, an exhausted or
expired challenge, an ownership conflict at commit) are raised only after that
change has been committed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deviceguard.core.clock import Clock, utcnow
from deviceguard.core.config import OtpSettings, TransferSettings
from deviceguard.core.locks import KeyedLock, challenge_key, device_key
from deviceguard.infrastructure.database.repositories import transfer_repository
from deviceguard.infrastructure.database.session import session_scope
from deviceguard.modules.accounts.service import AccountService
from deviceguard.modules.devices.exceptions import (
    InvalidTransitionError,
    NotOwnerError,
    OwnershipMismatchError,
)
from deviceguard.modules.devices.models import DeviceStatus
from deviceguard.modules.devices.registry import DeviceRegistry
from deviceguard.modules.otp.delivery import DeliveryDispatcher
from deviceguard.modules.otp.exceptions import (
    OTPExhaustedError,
    OTPExpiredError,
    OTPRejectedError,
)
from deviceguard.modules.otp.manager import ChallengeManager
from deviceguard.modules.otp.models import IssuedChallenge, VerifyResult

from .exceptions import (
    AttemptAlreadyTerminalError,
    AttemptExpiredError,
    DeviceNotTransferableError,
    InvalidRecipientError,
    InvalidTransferStepError,
    MissingContactChannelError,
    MissingReasonError,
    RecipientNotFoundError,
    ResendTooSoonError,
    TransferConflictError,
    TransferError,
    TransferNotFoundError,
)
from .models import (
    ChallengeSummary,
    FailureReason,
    TransferAttempt,
    TransferReason,
    TransferState,
)
from .repository import TransferRepository

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@dataclass(slots=True)
class _Unit:
    """Repositories and services bound to one transaction."""

    session: AsyncSession
    attempts: TransferRepository
    registry: DeviceRegistry
    challenges: ChallengeManager
    accounts: AccountService


@dataclass(slots=True)
class TransferWorkflow:
    session_factory: async_sessionmaker[AsyncSession]
    locks: KeyedLock
    dispatcher: DeliveryDispatcher
    otp_settings: OtpSettings
    transfer_settings: TransferSettings
    clock: Clock = utcnow

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    async def initiate(self, actor_id: str, device_id: str, recipient: str) -> TransferAttempt:
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                device = await unit.registry.get(device_id)
                if device.owner_id != actor_id:
                    raise NotOwnerError(f"device {device_id} does not belong to this account")
                if device.status is not DeviceStatus.ACTIVE:
                    raise DeviceNotTransferableError(
                        f"device is {device.status.value}, only active devices can be transferred"
                    )

                target = await unit.accounts.resolve_recipient(recipient)
                if target is None:
                    raise RecipientNotFoundError(f"no active account matches {recipient.strip()!r}")
                if target.id == actor_id:
                    raise InvalidRecipientError("a device cannot be transferred to its current owner")

                owner = await unit.accounts.get_by_id(actor_id)
                contact = owner.contact if owner else None
                if not contact:
                    raise MissingContactChannelError(
                        "add a phone number or email address before transferring a device"
                    )

                try:
                    await unit.registry.set_status(
                        device_id, DeviceStatus.TRANSFER_PENDING, actor_id, note="transfer initiated"
                    )
                except InvalidTransitionError as exc:
                    raise DeviceNotTransferableError(exc.message) from exc

                now = self.clock()
                attempt = await unit.attempts.create(
                    device_id=device_id,
                    from_owner_id=actor_id,
                    to_owner_ref=recipient.strip(),
                    to_owner_id=target.id,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.transfer_settings.attempt_ttl_seconds),
                )
                issued = await unit.challenges.issue(attempt.id, contact)
                attempt = await self._write(
                    unit, attempt, state=TransferState.CHALLENGE_ISSUED, challenge_id=issued.challenge.id
                )
                attempt = await self._attach_challenge(unit, attempt)

        logger.info(
            "Transfer %s initiated for device %s: %s -> %s",
            attempt.id,
            device_id,
            actor_id,
            target.id,
        )
        self._deliver(issued)
        return attempt

    async def verify(self, attempt_id: str, actor_id: str, code: str) -> TransferAttempt:
        device_id = await self._device_of(attempt_id)
        error: Optional[Exception] = None
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._load_for_sender(unit, attempt_id, actor_id)
                if attempt.is_terminal:
                    error = self._terminal_error(attempt)
                elif attempt.is_stale(self.clock()):
                    attempt = await self._expire(unit, attempt, SYSTEM_ACTOR)
                    error = AttemptExpiredError("transfer window has closed")
                elif attempt.state is not TransferState.CHALLENGE_ISSUED or attempt.challenge_id is None:
                    error = InvalidTransferStepError(
                        attempt.state.value, TransferState.CHALLENGE_ISSUED.value
                    )
                else:
                    attempt, error = await self._check_code(
                        unit, attempt, attempt.challenge_id, actor_id, code
                    )
                attempt = await self._attach_challenge(unit, attempt)

        if error is not None:
            raise error
        return attempt

    async def submit_reason(
        self,
        attempt_id: str,
        actor_id: str,
        reason_code: TransferReason | str,
        custom_reason: Optional[str] = None,
    ) -> TransferAttempt:
        try:
            reason = TransferReason(reason_code)
        except ValueError as exc:
            raise MissingReasonError(f"unknown transfer reason: {reason_code}") from exc
        custom = (custom_reason or "").strip() or None
        if reason is TransferReason.OTHER and custom is None:
            raise MissingReasonError("describe the reason when choosing 'other'")

        device_id = await self._device_of(attempt_id)
        error: Optional[Exception] = None
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._load_for_sender(unit, attempt_id, actor_id)
                if attempt.is_terminal:
                    return await self._attach_challenge(unit, attempt)
                error = await self._guard_open(unit, attempt)
                if error is None and attempt.state is not TransferState.IDENTITY_VERIFIED:
                    error = InvalidTransferStepError(
                        attempt.state.value, TransferState.IDENTITY_VERIFIED.value
                    )
                if error is None:
                    attempt = await self._write(
                        unit,
                        attempt,
                        state=TransferState.REASON_COLLECTED,
                        reason_code=reason,
                        custom_reason=custom if reason is TransferReason.OTHER else None,
                    )
                else:
                    attempt = await self._reload(unit, attempt_id)
                attempt = await self._attach_challenge(unit, attempt)

        if error is not None:
            raise error
        return attempt

    async def complete(self, attempt_id: str, actor_id: str) -> TransferAttempt:
        """Commit the ownership change; repeating the call on a finished attempt returns it as-is."""
        device_id = await self._device_of(attempt_id)
        error: Optional[Exception] = None
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._load_for_sender(unit, attempt_id, actor_id)
                if attempt.is_terminal:
                    return await self._attach_challenge(unit, attempt)
                if attempt.is_stale(self.clock()):
                    attempt = await self._expire(unit, attempt, SYSTEM_ACTOR)
                    error = AttemptExpiredError("transfer window has closed")
                elif attempt.state is not TransferState.REASON_COLLECTED:
                    error = InvalidTransferStepError(
                        attempt.state.value, TransferState.REASON_COLLECTED.value
                    )
                else:
                    attempt, error = await self._commit_ownership(unit, attempt, actor_id)
                attempt = await self._attach_challenge(unit, attempt)

        if error is not None:
            raise error
        return attempt

    async def resend(self, attempt_id: str, actor_id: str) -> TransferAttempt:
        """Retire the current challenge and send a fresh code to the owner's contact."""
        device_id = await self._device_of(attempt_id)
        error: Optional[Exception] = None
        issued: Optional[IssuedChallenge] = None
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._load_for_sender(unit, attempt_id, actor_id)
                error = await self._guard_open(unit, attempt)
                if error is None and attempt.state is not TransferState.CHALLENGE_ISSUED:
                    error = InvalidTransferStepError(
                        attempt.state.value, TransferState.CHALLENGE_ISSUED.value
                    )
                if error is None:
                    attempt, issued = await self._reissue(unit, attempt, actor_id)
                else:
                    attempt = await self._reload(unit, attempt_id)
                attempt = await self._attach_challenge(unit, attempt)

        if error is not None:
            raise error
        if issued is not None:
            self._deliver(issued)
        return attempt

    async def cancel(self, attempt_id: str, actor_id: str) -> TransferAttempt:
        device_id = await self._device_of(attempt_id)
        error: Optional[Exception] = None
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._load_for_sender(unit, attempt_id, actor_id)
                error = await self._guard_open(unit, attempt)
                if error is None:
                    attempt = await self._finish(
                        unit, attempt, TransferState.FAILED, FailureReason.CANCELLED, actor_id
                    )
                else:
                    attempt = await self._reload(unit, attempt_id)
                attempt = await self._attach_challenge(unit, attempt)

        if error is not None:
            raise error
        logger.info("Transfer %s cancelled by %s", attempt_id, actor_id)
        return attempt

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------
    async def get(self, attempt_id: str, actor_id: str, *, is_admin: bool = False) -> TransferAttempt:
        async with self._unit() as unit:
            attempt = await unit.attempts.get(attempt_id)
            if attempt is None:
                raise TransferNotFoundError(f"transfer not found: {attempt_id}")
            if not is_admin and not attempt.involves(actor_id):
                raise NotOwnerError("this transfer does not involve your account")
            stale = attempt.is_stale(self.clock())
            if not stale:
                return await self._attach_challenge(unit, attempt)

        await self._expire_by_id(attempt_id)
        async with self._unit() as unit:
            return await self._attach_challenge(unit, await self._reload(unit, attempt_id))

    async def list_for_account(self, account_id: str) -> Sequence[TransferAttempt]:
        async with self._unit() as unit:
            return list(await unit.attempts.list_for_account(account_id))

    async def list_all(
        self,
        *,
        state: Optional[TransferState] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[TransferAttempt]:
        async with self._unit() as unit:
            return list(await unit.attempts.list_all(state=state, limit=limit, offset=offset))

    async def expire_stale(self, limit: int = 100) -> int:
        """Expire open attempts past their window and release their devices."""
        async with self._unit() as unit:
            stale = list(await unit.attempts.list_stale(self.clock(), limit))

        expired = 0
        for attempt in stale:
            if await self._expire_by_id(attempt.id):
                expired += 1
        if expired:
            logger.info("Expired %d stale transfer(s)", expired)
        return expired

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _unit(self) -> AsyncIterator[_Unit]:
        async with session_scope(self.session_factory) as session:
            yield _Unit(
                session=session,
                attempts=transfer_repository.SqlTransferRepository(session),
                registry=DeviceRegistry.with_session(session, self.clock),
                challenges=ChallengeManager.with_session(session, self.otp_settings, self.clock),
                accounts=AccountService.with_session(session, self.clock),
            )

    async def _device_of(self, attempt_id: str) -> str:
        # The device an attempt points at never changes, so it is safe to read before locking.
        async with self._unit() as unit:
            attempt = await unit.attempts.get(attempt_id)
        if attempt is None:
            raise TransferNotFoundError(f"transfer not found: {attempt_id}")
        return attempt.device_id

    async def _reload(self, unit: _Unit, attempt_id: str) -> TransferAttempt:
        attempt = await unit.attempts.get(attempt_id)
        if attempt is None:
            raise TransferNotFoundError(f"transfer not found: {attempt_id}")
        return attempt

    async def _load_for_sender(self, unit: _Unit, attempt_id: str, actor_id: str) -> TransferAttempt:
        attempt = await self._reload(unit, attempt_id)
        if attempt.from_owner_id != actor_id:
            raise NotOwnerError("only the current owner can act on this transfer")
        return attempt

    async def _guard_open(self, unit: _Unit, attempt: TransferAttempt) -> Optional[TransferError]:
        """Return the error for a finished or timed-out attempt, expiring the latter."""
        if attempt.is_terminal:
            return AttemptAlreadyTerminalError(
                attempt.state.value,
                attempt.failure_reason.value if attempt.failure_reason else None,
            )
        if attempt.is_stale(self.clock()):
            await self._expire(unit, attempt, SYSTEM_ACTOR)
            return AttemptExpiredError("transfer window has closed")
        return None

    @staticmethod
    def _terminal_error(attempt: TransferAttempt) -> Exception:
        if attempt.failure_reason is FailureReason.OTP_EXHAUSTED:
            return OTPExhaustedError("too many incorrect codes, start a new transfer")
        if attempt.failure_reason is FailureReason.OTP_EXPIRED:
            return OTPExpiredError("the code has expired, start a new transfer")
        if attempt.state is TransferState.EXPIRED:
            return AttemptExpiredError("transfer window has closed")
        return AttemptAlreadyTerminalError(
            attempt.state.value,
            attempt.failure_reason.value if attempt.failure_reason else None,
        )

    async def _check_code(
        self,
        unit: _Unit,
        attempt: TransferAttempt,
        challenge_id: str,
        actor_id: str,
        code: str,
    ) -> tuple[TransferAttempt, Optional[Exception]]:
        async with self.locks.hold(challenge_key(challenge_id)):
            outcome = await unit.challenges.verify(challenge_id, code)

        if outcome.result is VerifyResult.ACCEPTED:
            attempt = await self._write(unit, attempt, state=TransferState.IDENTITY_VERIFIED)
            logger.info("Transfer %s identity verified", attempt.id)
            return attempt, None
        if outcome.result is VerifyResult.REJECTED:
            return attempt, OTPRejectedError(outcome.attempts_remaining)
        if outcome.result is VerifyResult.EXPIRED:
            attempt = await self._finish(
                unit, attempt, TransferState.EXPIRED, FailureReason.OTP_EXPIRED, actor_id
            )
            return attempt, OTPExpiredError("the code has expired, start a new transfer")
        attempt = await self._finish(
            unit, attempt, TransferState.FAILED, FailureReason.OTP_EXHAUSTED, actor_id
        )
        return attempt, OTPExhaustedError("too many incorrect codes, start a new transfer")

    async def _commit_ownership(
        self, unit: _Unit, attempt: TransferAttempt, actor_id: str
    ) -> tuple[TransferAttempt, Optional[Exception]]:
        recipient = await unit.accounts.get_by_id(attempt.to_owner_id)
        if recipient is None or not recipient.is_active:
            attempt = await self._finish(
                unit, attempt, TransferState.FAILED, FailureReason.RECIPIENT_UNAVAILABLE, actor_id
            )
            return attempt, RecipientNotFoundError("the recipient account is no longer available")

        try:
            await unit.registry.transfer_ownership(
                attempt.device_id,
                attempt.from_owner_id,
                attempt.to_owner_id,
                actor_id=actor_id,
                note=f"transfer {attempt.id}",
            )
        except (OwnershipMismatchError, InvalidTransitionError) as exc:
            reason = (
                FailureReason.OWNERSHIP_MISMATCH
                if isinstance(exc, OwnershipMismatchError)
                else FailureReason.INVALID_TRANSITION
            )
            # The device is left exactly as the registry has it.
            attempt = await self._write(
                unit, attempt, state=TransferState.FAILED, failure_reason=reason
            )
            logger.warning("Transfer %s failed at commit: %s", attempt.id, exc.message)
            return attempt, exc

        await unit.registry.set_status(
            attempt.device_id, DeviceStatus.ACTIVE, attempt.to_owner_id, note="ownership received"
        )
        attempt = await self._write(
            unit, attempt, state=TransferState.COMPLETED, completed_at=self.clock()
        )
        logger.info(
            "Transfer %s completed: device %s now owned by %s",
            attempt.id,
            attempt.device_id,
            attempt.to_owner_id,
        )
        return attempt, None

    async def _reissue(
        self, unit: _Unit, attempt: TransferAttempt, actor_id: str
    ) -> tuple[TransferAttempt, IssuedChallenge]:
        now = self.clock()
        if attempt.challenge_id is not None:
            current = await unit.challenges.get(attempt.challenge_id)
            ready_at = current.issued_at + timedelta(seconds=self.otp_settings.resend_cooldown_seconds)
            if not current.consumed and now < ready_at:
                raise ResendTooSoonError(max(1, int((ready_at - now).total_seconds() + 0.999)))
            async with self.locks.hold(challenge_key(current.id)):
                await unit.challenges.invalidate(current.id)

        owner = await unit.accounts.get_by_id(actor_id)
        contact = owner.contact if owner else None
        if not contact:
            raise MissingContactChannelError(
                "add a phone number or email address before requesting a new code"
            )
        issued = await unit.challenges.issue(attempt.id, contact)
        attempt = await self._write(unit, attempt, challenge_id=issued.challenge.id)
        logger.info("Transfer %s challenge reissued as %s", attempt.id, issued.challenge.id)
        return attempt, issued

    async def _expire_by_id(self, attempt_id: str) -> bool:
        device_id = await self._device_of(attempt_id)
        async with self.locks.hold(device_key(device_id)):
            async with self._unit() as unit:
                attempt = await self._reload(unit, attempt_id)
                if not attempt.is_stale(self.clock()):
                    return False
                await self._expire(unit, attempt, SYSTEM_ACTOR)
                return True

    async def _expire(self, unit: _Unit, attempt: TransferAttempt, actor_id: str) -> TransferAttempt:
        logger.info("Transfer %s expired after %s", attempt.id, attempt.expires_at.isoformat())
        return await self._finish(
            unit, attempt, TransferState.EXPIRED, FailureReason.TTL_EXPIRED, actor_id
        )

    async def _finish(
        self,
        unit: _Unit,
        attempt: TransferAttempt,
        state: TransferState,
        reason: FailureReason,
        actor_id: str,
    ) -> TransferAttempt:
        """Close an attempt without transferring and hand the device back to its owner."""
        attempt = await self._write(unit, attempt, state=state, failure_reason=reason)
        if attempt.challenge_id is not None:
            await unit.challenges.invalidate(attempt.challenge_id)

        device = await unit.registry.get(attempt.device_id)
        if device.status is DeviceStatus.TRANSFER_PENDING and device.owner_id == attempt.from_owner_id:
            await unit.registry.set_status(
                device.id,
                DeviceStatus.ACTIVE,
                actor_id,
                note=f"transfer {attempt.id} {reason.value}",
            )
        else:
            logger.warning(
                "Transfer %s closed but device %s is %s; left unchanged",
                attempt.id,
                device.id,
                device.status.value,
            )
        return attempt

    async def _write(self, unit: _Unit, attempt: TransferAttempt, **values) -> TransferAttempt:
        now = self.clock()
        written = await unit.attempts.compare_and_set(
            attempt.id, attempt.version, updated_at=now, **values
        )
        if not written:
            raise TransferConflictError(f"transfer {attempt.id} was modified concurrently")
        return await self._reload(unit, attempt.id)

    async def _attach_challenge(self, unit: _Unit, attempt: TransferAttempt) -> TransferAttempt:
        if attempt.challenge_id is None:
            return attempt
        challenge = await unit.challenges.get(attempt.challenge_id)
        attempt.challenge = ChallengeSummary(
            destination=challenge.destination,
            expires_at=challenge.expires_at,
            attempts_remaining=challenge.attempts_remaining,
            consumed=challenge.consumed,
        )
        return attempt

    def _deliver(self, issued: IssuedChallenge) -> None:
        self.dispatcher.dispatch(issued)


__all__ = ["SYSTEM_ACTOR", "TransferWorkflow"]
