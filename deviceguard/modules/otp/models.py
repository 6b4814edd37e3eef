"""Domain models for one-time passcode challenges."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class VerifyResult(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class OtpChallenge:
    id: str
    transfer_attempt_id: str
    code: str = field(repr=False)
    destination: str
    issued_at: datetime
    expires_at: datetime
    attempts_remaining: int
    failed_attempts: int = 0
    consumed: bool = False
    invalidated_at: Optional[datetime] = None
    version: int = 1

    def is_expired(self, now: datetime) -> bool:
        return self.invalidated_at is not None or now > self.expires_at


@dataclass(frozen=True, slots=True)
class VerifyOutcome:
    result: VerifyResult
    attempts_remaining: int


@dataclass(frozen=True, slots=True)
class IssuedChallenge:
    """A freshly recorded challenge plus the unmasked contact it must be delivered to."""

    challenge: OtpChallenge
    contact: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class DeliveryAck:
    message_id: str
    channel: str
