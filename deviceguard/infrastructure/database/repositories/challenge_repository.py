"""SQLAlchemy implementation of the OTP challenge repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.db.models import OtpChallenge as OtpChallengeModel
from deviceguard.modules.otp.models import OtpChallenge


class SqlChallengeRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, challenge_id: str) -> OtpChallenge | None:
        stmt = (
            select(OtpChallengeModel)
            .where(OtpChallengeModel.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

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
        model = OtpChallengeModel(
            transfer_attempt_id=transfer_attempt_id,
            code=code,
            destination=destination,
            issued_at=issued_at,
            expires_at=expires_at,
            attempts_remaining=attempts_remaining,
            failed_attempts=0,
            consumed=False,
            version=1,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_domain(model)

    async def compare_and_set(self, challenge_id: str, expected_version: int, **values: Any) -> bool:
        stmt = (
            update(OtpChallengeModel)
            .where(
                OtpChallengeModel.id == challenge_id,
                OtpChallengeModel.version == expected_version,
            )
            .values(version=OtpChallengeModel.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    def _to_domain(model: OtpChallengeModel) -> OtpChallenge:
        return OtpChallenge(
            id=str(model.id),
            transfer_attempt_id=model.transfer_attempt_id,
            code=model.code,
            destination=model.destination,
            issued_at=model.issued_at,
            expires_at=model.expires_at,
            attempts_remaining=model.attempts_remaining,
            failed_attempts=model.failed_attempts,
            consumed=bool(model.consumed),
            invalidated_at=model.invalidated_at,
            version=model.version,
        )
