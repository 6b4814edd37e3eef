"""One-time passcode specific exceptions."""

from __future__ import annotations

from typing import Any

from deviceguard.modules.common.exceptions import DomainError, NotFoundError


class OTPError(DomainError):
    """Base class for one-time passcode errors."""

    code = "otp_error"


class ChallengeNotFoundError(NotFoundError, OTPError):
    code = "challenge_not_found"


class OTPRejectedError(OTPError):
    """Wrong code; the caller may retry while attempts remain."""

    code = "otp_rejected"

    def __init__(self, attempts_remaining: int) -> None:
        super().__init__(f"incorrect code, {attempts_remaining} attempt(s) remaining")
        self.attempts_remaining = attempts_remaining

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["attempts_remaining"] = self.attempts_remaining
        return detail


class OTPExpiredError(OTPError):
    code = "otp_expired"

    def __init__(self, message: str = "the one-time code has expired") -> None:
        super().__init__(message)


class OTPExhaustedError(OTPError):
    code = "otp_exhausted"

    def __init__(self, message: str = "no verification attempts remain for this code") -> None:
        super().__init__(message)


class DeliveryError(OTPError):
    """Raised by delivery channels when a code could not be handed to the provider."""

    code = "delivery_failed"
