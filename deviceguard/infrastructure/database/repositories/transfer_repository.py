"""SQLAlchemy implementation of the transfer attempt repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.db.models import OPEN_TRANSFER_STATES
from deviceguard.db.models import TransferAttempt as TransferAttemptModel
from deviceguard.modules.transfers.exceptions import DeviceNotTransferableError
from deviceguard.modules.transfers.models import (
    FailureReason,
    TransferAttempt,
    TransferReason,
    TransferState,
)


class SqlTransferRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, attempt_id: str) -> TransferAttempt | None:
        stmt = (
            select(TransferAttemptModel)
            .where(TransferAttemptModel.id == attempt_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

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
        model = TransferAttemptModel(
            device_id=device_id,
            from_owner_id=from_owner_id,
            to_owner_ref=to_owner_ref,
            to_owner_id=to_owner_id,
            state=TransferState.INITIATED.value,
            version=1,
            created_at=created_at,
            updated_at=created_at,
            expires_at=expires_at,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DeviceNotTransferableError(
                f"device {device_id} already has an open transfer"
            ) from exc
        return self._to_domain(model)

    async def compare_and_set(self, attempt_id: str, expected_version: int, **values: Any) -> bool:
        for key, value in list(values.items()):
            if hasattr(value, "value"):
                values[key] = value.value
        stmt = (
            update(TransferAttemptModel)
            .where(
                TransferAttemptModel.id == attempt_id,
                TransferAttemptModel.version == expected_version,
            )
            .values(version=TransferAttemptModel.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_for_account(self, account_id: str) -> Sequence[TransferAttempt]:
        stmt = (
            select(TransferAttemptModel)
            .where(
                or_(
                    TransferAttemptModel.from_owner_id == account_id,
                    TransferAttemptModel.to_owner_id == account_id,
                )
            )
            .order_by(TransferAttemptModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_all(
        self, *, state: Optional[TransferState] = None, limit: int = 100, offset: int = 0
    ) -> Sequence[TransferAttempt]:
        stmt = select(TransferAttemptModel)
        if state is not None:
            stmt = stmt.where(TransferAttemptModel.state == state.value)
        stmt = stmt.order_by(TransferAttemptModel.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def list_stale(self, now: datetime, limit: int = 100) -> Sequence[TransferAttempt]:
        stmt = (
            select(TransferAttemptModel)
            .where(
                TransferAttemptModel.state.in_(OPEN_TRANSFER_STATES),
                TransferAttemptModel.expires_at < now,
            )
            .order_by(TransferAttemptModel.expires_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _to_domain(model: TransferAttemptModel) -> TransferAttempt:
        return TransferAttempt(
            id=str(model.id),
            device_id=model.device_id,
            from_owner_id=model.from_owner_id,
            to_owner_ref=model.to_owner_ref,
            to_owner_id=model.to_owner_id,
            state=TransferState(model.state),
            created_at=model.created_at,
            expires_at=model.expires_at,
            version=model.version,
            reason_code=TransferReason(model.reason_code) if model.reason_code else None,
            custom_reason=model.custom_reason,
            failure_reason=FailureReason(model.failure_reason) if model.failure_reason else None,
            challenge_id=model.challenge_id,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )
