"""Device domain exports."""

from .checker import PublicStatusChecker, PublicStatusResult
from .exceptions import (
    DeviceError,
    DeviceNotFoundError,
    IdentifierAlreadyRegisteredError,
    InvalidIdentifierError,
    InvalidTransitionError,
    NotOwnerError,
    OwnershipMismatchError,
)
from .identifiers import IdentifierKind, NormalizedId, candidates, normalize
from .models import Device, DeviceStatus, DeviceSummary, DeviceType, PublicStatus, StatusEvent
from .registry import DeviceRegistry
from .service import DeviceService

__all__ = [
    "Device",
    "DeviceError",
    "DeviceNotFoundError",
    "DeviceRegistry",
    "DeviceService",
    "DeviceStatus",
    "DeviceSummary",
    "DeviceType",
    "IdentifierAlreadyRegisteredError",
    "IdentifierKind",
    "InvalidIdentifierError",
    "InvalidTransitionError",
    "NormalizedId",
    "NotOwnerError",
    "OwnershipMismatchError",
    "PublicStatus",
    "PublicStatusChecker",
    "PublicStatusResult",
    "StatusEvent",
    "candidates",
    "normalize",
]
