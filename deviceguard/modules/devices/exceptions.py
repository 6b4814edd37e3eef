"""Device domain specific exceptions."""

from __future__ import annotations

from typing import Any

from deviceguard.modules.common.exceptions import DomainError, NotFoundError


class DeviceError(DomainError):
    """Base class for device related domain errors."""

    code = "device_error"


class InvalidIdentifierError(DeviceError):
    """Raised when a raw IMEI or serial number cannot be normalized."""

    code = "invalid_identifier"


class IdentifierAlreadyRegisteredError(DeviceError):
    """Raised when an identifier already belongs to another device."""

    code = "identifier_already_registered"

    def __init__(self, value: str) -> None:
        super().__init__(f"identifier already registered: {value}")
        self.value = value


class DeviceNotFoundError(NotFoundError, DeviceError):
    """Raised when the requested device could not be found."""

    code = "device_not_found"


class NotOwnerError(DeviceError):
    """Raised when the acting account does not own the device."""

    code = "not_owner"


class InvalidTransitionError(DeviceError):
    """Raised when a status change is not allowed from the device's current status."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str, message: str = "") -> None:
        super().__init__(message or f"cannot move device from {current} to {target}")
        self.current = current
        self.target = target

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(current_status=self.current, target_status=self.target)
        return detail


class OwnershipMismatchError(DeviceError):
    """Raised when the expected owner no longer matches the stored owner."""

    code = "ownership_mismatch"
