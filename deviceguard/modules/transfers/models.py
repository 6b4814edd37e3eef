"""Domain models for device ownership transfers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TransferState(str, Enum):
    INITIATED = "initiated"
    CHALLENGE_ISSUED = "challenge_issued"
    IDENTITY_VERIFIED = "identity_verified"
    REASON_COLLECTED = "reason_collected"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_STATES = frozenset({TransferState.COMPLETED, TransferState.FAILED, TransferState.EXPIRED})


class TransferReason(str, Enum):
    GIFT = "gift"
    SOLD = "sold"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    OTHER = "other"


class FailureReason(str, Enum):
    CANCELLED = "cancelled"
    OTP_EXPIRED = "otp_expired"
    OTP_EXHAUSTED = "otp_exhausted"
    OWNERSHIP_MISMATCH = "ownership_mismatch"
    INVALID_TRANSITION = "invalid_transition"
    RECIPIENT_UNAVAILABLE = "recipient_unavailable"
    TTL_EXPIRED = "ttl_expired"


@dataclass(frozen=True, slots=True)
class ChallengeSummary:
    """What the sender may see about the current challenge; never the code itself."""

    destination: str
    expires_at: datetime
    attempts_remaining: int
    consumed: bool


@dataclass(slots=True)
class TransferAttempt:
    id: str
    device_id: str
    from_owner_id: str
    to_owner_ref: str
    to_owner_id: str
    state: TransferState
    created_at: datetime
    expires_at: datetime
    version: int = 1
    reason_code: Optional[TransferReason] = None
    custom_reason: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    challenge_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    challenge: Optional[ChallengeSummary] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_stale(self, now: datetime) -> bool:
        return not self.is_terminal and now > self.expires_at

    def involves(self, account_id: str) -> bool:
        return account_id in (self.from_owner_id, self.to_owner_id)
