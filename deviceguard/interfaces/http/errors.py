"""Translate domain errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from deviceguard.modules.accounts.exceptions import AccountAlreadyExistsError
from deviceguard.modules.common.exceptions import DomainError, LockTimeoutError, NotFoundError
from deviceguard.modules.devices.exceptions import (
    IdentifierAlreadyRegisteredError,
    InvalidIdentifierError,
    InvalidTransitionError,
    NotOwnerError,
    OwnershipMismatchError,
)
from deviceguard.modules.otp.exceptions import OTPExhaustedError, OTPExpiredError, OTPRejectedError
from deviceguard.modules.transfers.exceptions import (
    AttemptAlreadyTerminalError,
    AttemptExpiredError,
    DeviceNotTransferableError,
    InvalidRecipientError,
    InvalidTransferStepError,
    MissingContactChannelError,
    MissingReasonError,
    ResendTooSoonError,
    TransferConflictError,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses must come before their bases.
_STATUS_MAP: tuple[tuple[type[DomainError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (NotOwnerError, status.HTTP_403_FORBIDDEN),
    (InvalidIdentifierError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidRecipientError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingReasonError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingContactChannelError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (OTPRejectedError, status.HTTP_400_BAD_REQUEST),
    (OTPExpiredError, status.HTTP_410_GONE),
    (AttemptExpiredError, status.HTTP_410_GONE),
    (OTPExhaustedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ResendTooSoonError, status.HTTP_429_TOO_MANY_REQUESTS),
    (DeviceNotTransferableError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (OwnershipMismatchError, status.HTTP_409_CONFLICT),
    (AttemptAlreadyTerminalError, status.HTTP_409_CONFLICT),
    (InvalidTransferStepError, status.HTTP_409_CONFLICT),
    (TransferConflictError, status.HTTP_409_CONFLICT),
    (IdentifierAlreadyRegisteredError, status.HTTP_409_CONFLICT),
    (AccountAlreadyExistsError, status.HTTP_409_CONFLICT),
    (LockTimeoutError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: DomainError) -> int:
    for error_type, status_code in _STATUS_MAP:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = None
    if isinstance(exc, ResendTooSoonError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=status_code, content={"detail": exc.to_detail()}, headers=headers)


__all__ = ["domain_error_handler", "status_for"]
