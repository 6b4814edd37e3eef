"""Repository protocol for device records and their status history."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from .models import Device, DeviceIdentifier, DeviceStatus, DeviceType, StatusEvent


class DeviceRepository(Protocol):
    async def get_by_id(self, device_id: str) -> Device | None:
        ...

    async def get_by_identifier(self, value: str) -> Device | None:
        ...

    async def identifier_exists(self, value: str) -> bool:
        ...

    async def list_by_owner(self, owner_id: str) -> Sequence[Device]:
        ...

    async def create_device(
        self,
        *,
        owner_id: str,
        name: str,
        device_type: DeviceType,
        identifiers: Sequence[DeviceIdentifier],
        created_at: datetime,
    ) -> Device:
        ...

    async def compare_and_set(
        self,
        device_id: str,
        *,
        expected_version: int,
        status: DeviceStatus,
        owner_id: str,
        updated_at: datetime,
    ) -> bool:
        """Write status and owner only if the stored version still equals ``expected_version``."""
        ...

    async def append_event(self, device_id: str, event: StatusEvent) -> None:
        ...

    async def list_events(self, device_id: str) -> Sequence[StatusEvent]:
        ...
