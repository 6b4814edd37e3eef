"""Issue and verify single-use passcodes bound to one transfer attempt."""

from __future__ import annotations

import hmac
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.clock import Clock, utcnow
from deviceguard.core.config import OtpSettings
from deviceguard.core.locks import challenge_key
from deviceguard.infrastructure.database.repositories import challenge_repository
from deviceguard.modules.common.exceptions import LockTimeoutError

from .delivery import mask_destination
from .exceptions import ChallengeNotFoundError
from .models import IssuedChallenge, OtpChallenge, VerifyOutcome, VerifyResult
from .repository import ChallengeRepository

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
# A lost compare-and-set means another verifier wrote first; re-read and re-evaluate.
_MAX_CAS_ROUNDS = 3


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_submission(submitted: str) -> str:
    return _NON_ALNUM.sub("", (submitted or "").upper())


@dataclass(slots=True)
class ChallengeManager:
    repository: ChallengeRepository
    settings: OtpSettings
    clock: Clock = utcnow

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        settings: OtpSettings,
        clock: Clock = utcnow,
    ) -> "ChallengeManager":
        return cls(challenge_repository.SqlChallengeRepository(session), settings, clock)

    async def get(self, challenge_id: str) -> OtpChallenge:
        challenge = await self.repository.get(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(f"challenge not found: {challenge_id}")
        return challenge

    async def issue(self, transfer_attempt_id: str, destination: str) -> IssuedChallenge:
        issued_at = self.clock()
        challenge = await self.repository.create(
            transfer_attempt_id=transfer_attempt_id,
            code=generate_code(self.settings.code_length),
            destination=mask_destination(destination),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=self.settings.ttl_seconds),
            attempts_remaining=self.settings.max_attempts,
        )
        logger.info(
            "Issued challenge %s for transfer %s to %s",
            challenge.id,
            transfer_attempt_id,
            challenge.destination,
        )
        return IssuedChallenge(challenge=challenge, contact=destination)

    async def invalidate(self, challenge_id: str) -> OtpChallenge:
        """Retire a challenge that has been superseded; consumed ones are left untouched."""
        for _ in range(_MAX_CAS_ROUNDS):
            challenge = await self.get(challenge_id)
            if challenge.consumed or challenge.invalidated_at is not None:
                return challenge
            now = self.clock()
            if await self.repository.compare_and_set(
                challenge.id, challenge.version, invalidated_at=now
            ):
                challenge.invalidated_at = now
                challenge.version += 1
                return challenge
        raise LockTimeoutError(challenge_key(challenge_id))

    async def verify(self, challenge_id: str, submitted_code: str) -> VerifyOutcome:
        for _ in range(_MAX_CAS_ROUNDS):
            challenge = await self.get(challenge_id)
            outcome = await self._evaluate(challenge, submitted_code)
            if outcome is not None:
                logger.info(
                    "Challenge %s verification: %s (%d left)",
                    challenge.id,
                    outcome.result.value,
                    outcome.attempts_remaining,
                )
                return outcome
        raise LockTimeoutError(challenge_key(challenge_id))

    async def _evaluate(self, challenge: OtpChallenge, submitted_code: str) -> VerifyOutcome | None:
        """One read-evaluate-write round; ``None`` when another writer got there first."""
        now = self.clock()

        # Single use: a consumed code never becomes usable again, whatever is submitted.
        if challenge.consumed:
            return VerifyOutcome(VerifyResult.REJECTED, challenge.attempts_remaining)

        if challenge.is_expired(now):
            if challenge.invalidated_at is None:
                if not await self.repository.compare_and_set(
                    challenge.id, challenge.version, invalidated_at=now
                ):
                    return None
            return VerifyOutcome(VerifyResult.EXPIRED, challenge.attempts_remaining)

        if challenge.attempts_remaining <= 0:
            return VerifyOutcome(VerifyResult.EXHAUSTED, 0)

        remaining = challenge.attempts_remaining - 1
        candidate = normalize_submission(submitted_code)
        matched = len(candidate) == len(challenge.code) and hmac.compare_digest(
            candidate.encode("ascii"), challenge.code.encode("ascii")
        )

        if matched:
            written = await self.repository.compare_and_set(
                challenge.id,
                challenge.version,
                attempts_remaining=remaining,
                consumed=True,
            )
            return VerifyOutcome(VerifyResult.ACCEPTED, remaining) if written else None

        written = await self.repository.compare_and_set(
            challenge.id,
            challenge.version,
            attempts_remaining=remaining,
            failed_attempts=challenge.failed_attempts + 1,
        )
        if not written:
            return None
        result = VerifyResult.EXHAUSTED if remaining == 0 else VerifyResult.REJECTED
        return VerifyOutcome(result, remaining)


__all__ = ["ChallengeManager", "CODE_ALPHABET", "CODE_LENGTH", "generate_code", "normalize_submission"]
