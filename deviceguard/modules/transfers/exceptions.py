"""Transfer workflow specific exceptions."""

from __future__ import annotations

from typing import Any, Optional

from deviceguard.modules.common.exceptions import DomainError, NotFoundError


class TransferError(DomainError):
    """Base class for transfer workflow errors."""

    code = "transfer_error"


class TransferNotFoundError(NotFoundError, TransferError):
    code = "transfer_not_found"


class RecipientNotFoundError(NotFoundError, TransferError):
    code = "recipient_not_found"


class InvalidRecipientError(TransferError):
    code = "invalid_recipient"


class MissingContactChannelError(TransferError):
    """The current owner has no phone number or email to receive the code."""

    code = "missing_contact_channel"


class DeviceNotTransferableError(TransferError):
    code = "device_not_transferable"


class MissingReasonError(TransferError):
    code = "missing_reason"


class AttemptExpiredError(TransferError):
    code = "attempt_expired"


class TransferConflictError(TransferError):
    """The attempt record changed underneath this writer."""

    code = "transfer_conflict"


class AttemptAlreadyTerminalError(TransferError):
    code = "attempt_already_terminal"

    def __init__(self, state: str, failure_reason: Optional[str] = None) -> None:
        message = f"transfer already {state}"
        if failure_reason:
            message = f"{message} ({failure_reason})"
        super().__init__(message)
        self.state = state
        self.failure_reason = failure_reason

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(state=self.state, failure_reason=self.failure_reason)
        return detail


class InvalidTransferStepError(TransferError):
    """The requested step does not follow from the attempt's current state."""

    code = "invalid_transfer_step"

    def __init__(self, state: str, expected: str) -> None:
        super().__init__(f"transfer is {state}, this step requires {expected}")
        self.state = state
        self.expected = expected

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(state=self.state, expected_state=self.expected)
        return detail


class ResendTooSoonError(TransferError):
    code = "resend_too_soon"

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(f"a new code can be requested in {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["retry_after_seconds"] = self.retry_after_seconds
        return detail
