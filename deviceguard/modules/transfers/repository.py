"""Repository protocol for transfer attempts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from .models import TransferAttempt, TransferState


class TransferRepository(Protocol):
    async def get(self, attempt_id: str) -> TransferAttempt | None:
        ...

    async def create(
        self,
        *,
        device_id: str,
        from_owner_id: str,
        to_owner_ref: str,
        to_owner_id: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> TransferAttempt:
        ...

    async def compare_and_set(self, attempt_id: str, expected_version: int, **values: Any) -> bool:
        ...

    async def list_for_account(self, account_id: str) -> Sequence[TransferAttempt]:
        ...

    async def list_all(
        self, *, state: Optional[TransferState], limit: int, offset: int
    ) -> Sequence[TransferAttempt]:
        ...

    async def list_stale(self, now: datetime, limit: int) -> Sequence[TransferAttempt]:
        ...
