"""One-time passcode domain exports."""

from .delivery import DeliveryChannel, DeliveryDispatcher, LoggingDeliveryChannel, mask_destination
from .exceptions import (
    ChallengeNotFoundError,
    DeliveryError,
    OTPError,
    OTPExhaustedError,
    OTPExpiredError,
    OTPRejectedError,
)
from .manager import ChallengeManager, generate_code, normalize_submission
from .models import DeliveryAck, IssuedChallenge, OtpChallenge, VerifyOutcome, VerifyResult

__all__ = [
    "ChallengeManager",
    "ChallengeNotFoundError",
    "DeliveryAck",
    "DeliveryChannel",
    "DeliveryDispatcher",
    "DeliveryError",
    "IssuedChallenge",
    "LoggingDeliveryChannel",
    "OTPError",
    "OTPExhaustedError",
    "OTPExpiredError",
    "OTPRejectedError",
    "OtpChallenge",
    "VerifyOutcome",
    "VerifyResult",
    "generate_code",
    "mask_destination",
    "normalize_submission",
]
