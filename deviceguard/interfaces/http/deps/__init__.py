"""Reusable FastAPI dependencies."""

from .database import get_container, get_db_session
from .account import get_account_repository, get_account_service
from .services import (
    get_device_service,
    get_status_checker,
    get_transfer_sweeper,
    get_transfer_workflow,
)

__all__ = [
    "get_container",
    "get_db_session",
    "get_account_repository",
    "get_account_service",
    "get_device_service",
    "get_status_checker",
    "get_transfer_sweeper",
    "get_transfer_workflow",
]
