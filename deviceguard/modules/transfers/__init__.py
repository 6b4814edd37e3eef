"""Device ownership transfer exports."""

from .exceptions import (
    AttemptAlreadyTerminalError,
    AttemptExpiredError,
    DeviceNotTransferableError,
    InvalidRecipientError,
    InvalidTransferStepError,
    MissingContactChannelError,
    MissingReasonError,
    RecipientNotFoundError,
    ResendTooSoonError,
    TransferConflictError,
    TransferError,
    TransferNotFoundError,
)
from .models import (
    TERMINAL_STATES,
    ChallengeSummary,
    FailureReason,
    TransferAttempt,
    TransferReason,
    TransferState,
)
from .sweeper import TransferSweeper
from .workflow import SYSTEM_ACTOR, TransferWorkflow

__all__ = [
    "AttemptAlreadyTerminalError",
    "AttemptExpiredError",
    "ChallengeSummary",
    "DeviceNotTransferableError",
    "FailureReason",
    "InvalidRecipientError",
    "InvalidTransferStepError",
    "MissingContactChannelError",
    "MissingReasonError",
    "RecipientNotFoundError",
    "ResendTooSoonError",
    "SYSTEM_ACTOR",
    "TERMINAL_STATES",
    "TransferAttempt",
    "TransferConflictError",
    "TransferError",
    "TransferNotFoundError",
    "TransferReason",
    "TransferState",
    "TransferSweeper",
    "TransferWorkflow",
]
