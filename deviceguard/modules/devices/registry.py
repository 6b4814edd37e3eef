"""Authoritative device status registry.

The registry is the only component allowed to change a device's ``status`` or
``owner_id``. Every write is a compare-and-set on the device's version, so two
writers racing on the same device end in ``InvalidTransitionError`` or
``OwnershipMismatchError`` instead of one silently overwriting the other.
Callers that need strict ordering additionally hold the per-device lock from
``deviceguard.core.locks``.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.clock import Clock, utcnow
from deviceguard.infrastructure.database.repositories import device_repository

from .exceptions import (
    DeviceNotFoundError,
    IdentifierAlreadyRegisteredError,
    InvalidIdentifierError,
    InvalidTransitionError,
    OwnershipMismatchError,
)
from .identifiers import IdentifierKind, NormalizedId, candidates, normalize
from .models import (
    Device,
    DeviceIdentifier,
    DeviceStatus,
    DeviceSummary,
    DeviceType,
    IdentifierSlot,
    StatusEvent,
    can_transition,
)
from .repository import DeviceRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeviceRegistry:
    repository: DeviceRepository
    clock: Clock = utcnow

    @classmethod
    def with_session(cls, session: AsyncSession, clock: Clock = utcnow) -> "DeviceRegistry":
        return cls(device_repository.SqlDeviceRepository(session), clock)

    async def get(self, device_id: str) -> Device:
        device = await self.repository.get_by_id(device_id)
        if device is None:
            raise DeviceNotFoundError(f"device not found: {device_id}")
        return device

    async def find(self, identifier: NormalizedId | str) -> Optional[Device]:
        """Exact match on a normalized identifier; raw strings are tried under every valid kind."""
        if isinstance(identifier, NormalizedId):
            return await self.repository.get_by_identifier(identifier.value)
        for candidate in candidates(identifier):
            device = await self.repository.get_by_identifier(candidate.value)
            if device is not None:
                return device
        return None

    async def lookup(self, identifier: NormalizedId | str) -> Device:
        device = await self.find(identifier)
        if device is None:
            raise DeviceNotFoundError(f"no device registered under {identifier}")
        return device

    async def list_for_owner(self, owner_id: str) -> DeviceSummary:
        devices = list(await self.repository.list_by_owner(owner_id))
        return DeviceSummary(total=len(devices), devices=devices)

    async def history(self, device_id: str) -> Sequence[StatusEvent]:
        await self.get(device_id)
        return await self.repository.list_events(device_id)

    async def register(
        self,
        *,
        owner_id: str,
        name: str,
        device_type: DeviceType = DeviceType.PHONE,
        imei: Optional[str] = None,
        imei2: Optional[str] = None,
        serial_number: Optional[str] = None,
    ) -> Device:
        identifiers = self._collect_identifiers(imei=imei, imei2=imei2, serial_number=serial_number)
        for item in identifiers:
            if await self.repository.identifier_exists(item.value):
                raise IdentifierAlreadyRegisteredError(item.value)

        now = self.clock()
        device = await self.repository.create_device(
            owner_id=owner_id,
            name=name.strip(),
            device_type=device_type,
            identifiers=identifiers,
            created_at=now,
        )
        await self.repository.append_event(
            device.id,
            StatusEvent(status=DeviceStatus.ACTIVE, actor_id=owner_id, created_at=now, note="registered"),
        )
        logger.info("Device %s registered for account %s", device.id, owner_id)
        return device

    async def set_status(
        self,
        device_id: str,
        new_status: DeviceStatus,
        actor_id: str,
        note: Optional[str] = None,
    ) -> Device:
        device = await self.get(device_id)
        if not can_transition(device.status, new_status):
            raise InvalidTransitionError(device.status.value, new_status.value)

        now = self.clock()
        written = await self.repository.compare_and_set(
            device.id,
            expected_version=device.version,
            status=new_status,
            owner_id=device.owner_id,
            updated_at=now,
        )
        if not written:
            current = await self.get(device_id)
            raise InvalidTransitionError(
                current.status.value,
                new_status.value,
                "device was modified concurrently, re-read its status before retrying",
            )

        await self.repository.append_event(
            device.id,
            StatusEvent(status=new_status, actor_id=actor_id, created_at=now, note=note),
        )
        logger.info(
            "Device %s status %s -> %s by %s",
            device.id,
            device.status.value,
            new_status.value,
            actor_id,
        )
        return dataclasses.replace(
            device, status=new_status, version=device.version + 1, updated_at=now
        )

    async def transfer_ownership(
        self,
        device_id: str,
        from_owner_id: str,
        to_owner_id: str,
        actor_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Device:
        """Move the device to ``to_owner_id`` and ``transferred`` in one write, or not at all."""
        device = await self.get(device_id)
        if device.owner_id != from_owner_id:
            raise OwnershipMismatchError(
                f"device {device_id} is no longer owned by {from_owner_id}"
            )
        if not can_transition(device.status, DeviceStatus.TRANSFERRED):
            raise InvalidTransitionError(device.status.value, DeviceStatus.TRANSFERRED.value)

        now = self.clock()
        written = await self.repository.compare_and_set(
            device.id,
            expected_version=device.version,
            status=DeviceStatus.TRANSFERRED,
            owner_id=to_owner_id,
            updated_at=now,
        )
        if not written:
            raise OwnershipMismatchError(
                f"device {device_id} changed while its ownership was being transferred"
            )

        await self.repository.append_event(
            device.id,
            StatusEvent(
                status=DeviceStatus.TRANSFERRED,
                actor_id=actor_id or from_owner_id,
                created_at=now,
                note=note,
            ),
        )
        logger.info("Device %s ownership %s -> %s", device.id, from_owner_id, to_owner_id)
        return dataclasses.replace(
            device,
            owner_id=to_owner_id,
            status=DeviceStatus.TRANSFERRED,
            version=device.version + 1,
            updated_at=now,
        )

    @staticmethod
    def _collect_identifiers(
        *,
        imei: Optional[str],
        imei2: Optional[str],
        serial_number: Optional[str],
    ) -> list[DeviceIdentifier]:
        if imei2 and not imei:
            raise InvalidIdentifierError("a secondary IMEI requires a primary IMEI")

        identifiers: list[DeviceIdentifier] = []
        if imei:
            identifiers.append(DeviceIdentifier(IdentifierSlot.IMEI1, normalize(imei, IdentifierKind.IMEI)))
        if imei2:
            identifiers.append(DeviceIdentifier(IdentifierSlot.IMEI2, normalize(imei2, IdentifierKind.IMEI)))
        if serial_number:
            identifiers.append(
                DeviceIdentifier(IdentifierSlot.SERIAL, normalize(serial_number, IdentifierKind.SERIAL))
            )
        if not identifiers:
            raise InvalidIdentifierError("at least one IMEI or serial number is required")

        values = [item.value for item in identifiers]
        if len(set(values)) != len(values):
            raise InvalidIdentifierError("a device cannot list the same identifier twice")
        return identifiers


__all__ = ["DeviceRegistry"]
