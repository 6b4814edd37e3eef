"""Repository protocol for OTP challenges."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from .models import OtpChallenge


class ChallengeRepository(Protocol):
    async def get(self, challenge_id: str) -> OtpChallenge | None:
        ...

    async def create(
        self,
        *,
        transfer_attempt_id: str,
        code: str,
        destination: str,
        issued_at: datetime,
        expires_at: datetime,
        attempts_remaining: int,
    ) -> OtpChallenge:
        ...

    async def compare_and_set(self, challenge_id: str, expected_version: int, **values: Any) -> bool:
        ...
