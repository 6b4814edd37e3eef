"""SQLAlchemy powered repository for device persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.db.models import (
    Device as DeviceModel,
    DeviceIdentifier as DeviceIdentifierModel,
    DeviceStatusEvent as DeviceStatusEventModel,
)
from deviceguard.modules.devices.exceptions import IdentifierAlreadyRegisteredError
from deviceguard.modules.devices.identifiers import IdentifierKind, NormalizedId
from deviceguard.modules.devices.models import (
    Device,
    DeviceIdentifier,
    DeviceStatus,
    DeviceType,
    IdentifierSlot,
    StatusEvent,
)


_SLOT_ORDER = {slot.value: index for index, slot in enumerate(IdentifierSlot)}

class SqlDeviceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, device_id: str) -> Device | None:
        stmt = (
            select(DeviceModel)
            .where(DeviceModel.id == device_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_by_identifier(self, value: str) -> Device | None:
        stmt = (
            select(DeviceModel)
            .join(DeviceIdentifierModel, DeviceIdentifierModel.device_id == DeviceModel.id)
            .where(DeviceIdentifierModel.value == value)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def identifier_exists(self, value: str) -> bool:
        stmt = select(exists().where(DeviceIdentifierModel.value == value))
        return bool((await self._session.execute(stmt)).scalar())

    async def list_by_owner(self, owner_id: str) -> list[Device]:
        stmt = (
            select(DeviceModel)
            .where(DeviceModel.owner_id == owner_id)
            .order_by(DeviceModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(model) for model in result.scalars().all()]

    async def create_device(
        self,
        *,
        owner_id: str,
        name: str,
        device_type: DeviceType,
        identifiers: Sequence[DeviceIdentifier],
        created_at: datetime,
    ) -> Device:
        model = DeviceModel(
            owner_id=owner_id,
            name=name,
            device_type=device_type.value,
            status=DeviceStatus.ACTIVE.value,
            version=1,
            created_at=created_at,
            identifiers=[
                DeviceIdentifierModel(
                    value=item.value,
                    kind=item.kind.value,
                    slot=item.slot.value,
                )
                for item in identifiers
            ],
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # Lost a registration race on one of the identifiers.
            raise IdentifierAlreadyRegisteredError(
                ", ".join(item.value for item in identifiers)
            ) from exc
        return self._to_domain(model)

    async def compare_and_set(
        self,
        device_id: str,
        *,
        expected_version: int,
        status: DeviceStatus,
        owner_id: str,
        updated_at: datetime,
    ) -> bool:
        stmt = (
            update(DeviceModel)
            .where(DeviceModel.id == device_id, DeviceModel.version == expected_version)
            .values(
                status=status.value,
                owner_id=owner_id,
                version=DeviceModel.version + 1,
                updated_at=updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def append_event(self, device_id: str, event: StatusEvent) -> None:
        self._session.add(
            DeviceStatusEventModel(
                device_id=device_id,
                status=event.status.value,
                actor_id=event.actor_id,
                note=event.note,
                created_at=event.created_at,
            )
        )
        await self._session.flush()

    async def list_events(self, device_id: str) -> list[StatusEvent]:
        stmt = (
            select(DeviceStatusEventModel)
            .where(DeviceStatusEventModel.device_id == device_id)
            .order_by(DeviceStatusEventModel.id)
        )
        result = await self._session.execute(stmt)
        return [
            StatusEvent(
                status=DeviceStatus(row.status),
                actor_id=row.actor_id,
                created_at=row.created_at,
                note=row.note,
            )
            for row in result.scalars().all()
        ]

    @staticmethod
    def _to_domain(model: DeviceModel) -> Device:
        return Device(
            id=str(model.id),
            owner_id=model.owner_id,
            name=model.name,
            device_type=DeviceType(model.device_type),
            status=DeviceStatus(model.status),
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
            identifiers=[
                DeviceIdentifier(
                    slot=IdentifierSlot(item.slot),
                    identifier=NormalizedId(IdentifierKind(item.kind), item.value),
                )
                for item in sorted(model.identifiers, key=lambda i: _SLOT_ORDER[i.slot])
            ],
        )
