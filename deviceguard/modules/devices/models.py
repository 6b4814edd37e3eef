"""Device domain models and the status transition table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .identifiers import IdentifierKind, NormalizedId


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    REPORTED_MISSING = "reported_missing"
    REPORTED_STOLEN = "reported_stolen"
    TRANSFER_PENDING = "transfer_pending"
    TRANSFERRED = "transferred"


class DeviceType(str, Enum):
    PHONE = "phone"
    LAPTOP = "laptop"
    TABLET = "tablet"
    OTHER = "other"


class PublicStatus(str, Enum):
    """Coarse status exposed to anonymous buyers."""

    ACTIVE = "active"
    REPORTED_MISSING = "reported_missing"
    REPORTED_STOLEN = "reported_stolen"
    UNKNOWN = "unknown"


ALLOWED_TRANSITIONS: dict[DeviceStatus, frozenset[DeviceStatus]] = {
    DeviceStatus.ACTIVE: frozenset(
        {DeviceStatus.REPORTED_MISSING, DeviceStatus.REPORTED_STOLEN, DeviceStatus.TRANSFER_PENDING}
    ),
    DeviceStatus.REPORTED_MISSING: frozenset({DeviceStatus.ACTIVE, DeviceStatus.REPORTED_STOLEN}),
    DeviceStatus.REPORTED_STOLEN: frozenset({DeviceStatus.ACTIVE}),
    DeviceStatus.TRANSFER_PENDING: frozenset({DeviceStatus.ACTIVE, DeviceStatus.TRANSFERRED}),
    DeviceStatus.TRANSFERRED: frozenset({DeviceStatus.ACTIVE}),
}


def can_transition(current: DeviceStatus, target: DeviceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class IdentifierSlot(str, Enum):
    IMEI1 = "imei1"
    IMEI2 = "imei2"
    SERIAL = "serial"


@dataclass(frozen=True, slots=True)
class DeviceIdentifier:
    slot: IdentifierSlot
    identifier: NormalizedId

    @property
    def value(self) -> str:
        return self.identifier.value

    @property
    def kind(self) -> IdentifierKind:
        return self.identifier.kind


@dataclass(frozen=True, slots=True)
class StatusEvent:
    status: DeviceStatus
    actor_id: str
    created_at: datetime
    note: Optional[str] = None


@dataclass(slots=True)
class Device:
    id: str
    owner_id: str
    name: str
    device_type: DeviceType
    status: DeviceStatus
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    identifiers: list[DeviceIdentifier] = field(default_factory=list)

    def identifier(self, slot: IdentifierSlot) -> Optional[str]:
        for item in self.identifiers:
            if item.slot is slot:
                return item.value
        return None

    @property
    def imei(self) -> Optional[str]:
        return self.identifier(IdentifierSlot.IMEI1)

    @property
    def imei2(self) -> Optional[str]:
        return self.identifier(IdentifierSlot.IMEI2)

    @property
    def serial_number(self) -> Optional[str]:
        return self.identifier(IdentifierSlot.SERIAL)


@dataclass(slots=True)
class DeviceSummary:
    """Simplified view used for listings."""

    total: int
    devices: list[Device]
