"""Domain service orchestrating owner-facing device workflows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.clock import Clock, utcnow

from .exceptions import InvalidTransitionError, NotOwnerError
from .models import Device, DeviceStatus, DeviceSummary, DeviceType, StatusEvent
from .registry import DeviceRegistry

REPORTABLE_STATUSES = frozenset({DeviceStatus.REPORTED_MISSING, DeviceStatus.REPORTED_STOLEN})


def _report_note(location: Optional[str], description: Optional[str]) -> Optional[str]:
    parts = []
    if location and location.strip():
        parts.append(f"location: {location.strip()}")
    if description and description.strip():
        parts.append(description.strip())
    return "; ".join(parts) or None


@dataclass(slots=True)
class DeviceService:
    registry: DeviceRegistry

    @classmethod
    def with_session(cls, session: AsyncSession, clock: Clock = utcnow) -> "DeviceService":
        return cls(DeviceRegistry.with_session(session, clock))

    async def register_device(
        self,
        *,
        owner_id: str,
        name: str,
        device_type: DeviceType,
        imei: Optional[str],
        imei2: Optional[str],
        serial_number: Optional[str],
    ) -> Device:
        return await self.registry.register(
            owner_id=owner_id,
            name=name,
            device_type=device_type,
            imei=imei,
            imei2=imei2,
            serial_number=serial_number,
        )

    async def list_devices(self, owner_id: str) -> DeviceSummary:
        return await self.registry.list_for_owner(owner_id)

    async def get_owned_device(self, device_id: str, actor_id: str, *, is_admin: bool = False) -> Device:
        device = await self.registry.get(device_id)
        if device.owner_id != actor_id and not is_admin:
            raise NotOwnerError(f"device {device_id} does not belong to this account")
        return device

    async def get_history(
        self, device_id: str, actor_id: str, *, is_admin: bool = False
    ) -> Sequence[StatusEvent]:
        await self.get_owned_device(device_id, actor_id, is_admin=is_admin)
        return await self.registry.history(device_id)

    async def report_device(
        self,
        device_id: str,
        actor_id: str,
        status: DeviceStatus,
        *,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Device:
        if status not in REPORTABLE_STATUSES:
            raise InvalidTransitionError("any", status.value, f"{status.value} is not a reportable status")
        await self.get_owned_device(device_id, actor_id)
        return await self.registry.set_status(
            device_id, status, actor_id, _report_note(location, description)
        )

    async def recover_device(
        self,
        device_id: str,
        actor_id: str,
        *,
        note: Optional[str] = None,
        is_admin: bool = False,
    ) -> Device:
        """Bring a missing or stolen device back to ``active``; the actor is kept in the history."""
        device = await self.get_owned_device(device_id, actor_id, is_admin=is_admin)
        if device.status not in REPORTABLE_STATUSES:
            raise InvalidTransitionError(
                device.status.value,
                DeviceStatus.ACTIVE.value,
                "only missing or stolen devices can be recovered",
            )
        return await self.registry.set_status(
            device_id, DeviceStatus.ACTIVE, actor_id, note or "recovered"
        )
