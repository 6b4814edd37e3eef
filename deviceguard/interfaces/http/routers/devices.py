"""Owner-facing device endpoints: registration, listing and theft reports."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.security import get_current_account
from deviceguard.interfaces.http.deps import get_db_session, get_device_service
from deviceguard.modules.accounts import Account as AccountDomain
from deviceguard.modules.devices import DeviceService, DeviceStatus
from deviceguard.schemas import (
    DeviceCreate,
    DeviceListResponse,
    DeviceRecoverRequest,
    DeviceReportRequest,
    DeviceResponse,
    StatusEventResponse,
)

router = APIRouter()


def _to_schema(device) -> DeviceResponse:
    return DeviceResponse.model_validate(device)


@router.post("", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED, summary="Register a device")
async def register_device(
    payload: DeviceCreate,
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
    db: AsyncSession = Depends(get_db_session),
):
    device = await service.register_device(
        owner_id=account.id,
        name=payload.name,
        device_type=payload.device_type,
        imei=payload.imei,
        imei2=payload.imei2,
        serial_number=payload.serial_number,
    )
    await db.commit()
    return _to_schema(device)


@router.get("", response_model=DeviceListResponse, summary="Devices owned by the current account")
async def list_devices(
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
):
    summary = await service.list_devices(account.id)
    return DeviceListResponse(
        total=summary.total,
        devices=[_to_schema(device) for device in summary.devices],
    )


@router.get("/{device_id}", response_model=DeviceResponse, summary="Device details")
async def get_device(
    device_id: str,
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
):
    device = await service.get_owned_device(device_id, account.id, is_admin=account.is_admin())
    return _to_schema(device)


@router.get("/{device_id}/history", response_model=list[StatusEventResponse], summary="Status history")
async def get_history(
    device_id: str,
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
):
    events = await service.get_history(device_id, account.id, is_admin=account.is_admin())
    return [StatusEventResponse.model_validate(event) for event in events]


@router.post("/{device_id}/report", response_model=DeviceResponse, summary="Report a device missing or stolen")
async def report_device(
    device_id: str,
    payload: DeviceReportRequest,
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
    db: AsyncSession = Depends(get_db_session),
):
    device = await service.report_device(
        device_id,
        account.id,
        DeviceStatus(payload.status),
        location=payload.location,
        description=payload.description,
    )
    await db.commit()
    return _to_schema(device)


@router.post("/{device_id}/recover", response_model=DeviceResponse, summary="Mark a reported device as recovered")
async def recover_device(
    device_id: str,
    payload: DeviceRecoverRequest,
    account: AccountDomain = Depends(get_current_account),
    service: DeviceService = Depends(get_device_service),
    db: AsyncSession = Depends(get_db_session),
):
    device = await service.recover_device(device_id, account.id, note=payload.note)
    await db.commit()
    return _to_schema(device)
