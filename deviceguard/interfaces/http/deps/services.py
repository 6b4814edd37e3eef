"""Domain service providers backed by the application container."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.container import ApplicationContainer
from deviceguard.modules.devices.checker import PublicStatusChecker
from deviceguard.modules.devices.service import DeviceService
from deviceguard.modules.transfers.sweeper import TransferSweeper
from deviceguard.modules.transfers.workflow import TransferWorkflow

from .database import get_container, get_db_session


def get_device_service(
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_container),
) -> DeviceService:
    return DeviceService.with_session(db, container.clock)


def get_transfer_workflow(container: ApplicationContainer = Depends(get_container)) -> TransferWorkflow:
    return container.workflow


def get_status_checker(container: ApplicationContainer = Depends(get_container)) -> PublicStatusChecker:
    return container.checker


def get_transfer_sweeper(container: ApplicationContainer = Depends(get_container)) -> TransferSweeper:
    return container.sweeper


__all__ = [
    "get_device_service",
    "get_status_checker",
    "get_transfer_sweeper",
    "get_transfer_workflow",
]
