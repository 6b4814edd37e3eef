"""Anonymous "is this device stolen?" lookups.

Reads go through their own short session and never touch the per-device write
locks; read-committed data is good enough for a buyer checking a listing.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deviceguard.infrastructure.database.session import session_scope

from .models import DeviceStatus, PublicStatus
from .registry import DeviceRegistry

# A device mid-transfer is neither missing nor stolen from a buyer's point of view.
_PUBLIC_STATUS = {
    DeviceStatus.ACTIVE: PublicStatus.ACTIVE,
    DeviceStatus.TRANSFER_PENDING: PublicStatus.ACTIVE,
    DeviceStatus.TRANSFERRED: PublicStatus.ACTIVE,
    DeviceStatus.REPORTED_MISSING: PublicStatus.REPORTED_MISSING,
    DeviceStatus.REPORTED_STOLEN: PublicStatus.REPORTED_STOLEN,
}


@dataclass(frozen=True, slots=True)
class PublicStatusResult:
    registered: bool
    status: PublicStatus


def to_public_status(status: DeviceStatus) -> PublicStatus:
    return _PUBLIC_STATUS[status]


@dataclass(slots=True)
class PublicStatusChecker:
    session_factory: async_sessionmaker[AsyncSession]

    async def check_status(self, raw_identifier: str) -> PublicStatusResult:
        async with session_scope(self.session_factory) as session:
            device = await DeviceRegistry.with_session(session).find(raw_identifier)
        if device is None:
            return PublicStatusResult(registered=False, status=PublicStatus.UNKNOWN)
        return PublicStatusResult(registered=True, status=to_public_status(device.status))


__all__ = ["PublicStatusChecker", "PublicStatusResult", "to_public_status"]
