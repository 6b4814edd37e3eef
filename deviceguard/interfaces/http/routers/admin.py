"""Administrative endpoints for transfers and reported devices."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.security import get_current_admin
from deviceguard.interfaces.http.deps import (
    get_account_service,
    get_db_session,
    get_device_service,
    get_transfer_sweeper,
    get_transfer_workflow,
)
from deviceguard.modules.accounts import Account as AccountDomain
from deviceguard.modules.accounts import AccountService
from deviceguard.modules.devices import DeviceService
from deviceguard.modules.transfers import TransferState, TransferSweeper, TransferWorkflow
from deviceguard.schemas import (
    AccountResponse,
    DeviceRecoverRequest,
    DeviceResponse,
    SweepResponse,
    TransferListResponse,
    TransferResponse,
)

router = APIRouter()


@router.get("/me", response_model=AccountResponse)
async def current_admin(admin: AccountDomain = Depends(get_current_admin)):
    return admin


@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    _: AccountDomain = Depends(get_current_admin),
    service: AccountService = Depends(get_account_service),
):
    return list(await service.list_accounts())


@router.get("/transfers", response_model=TransferListResponse)
async def list_transfers(
    state: Optional[TransferState] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _: AccountDomain = Depends(get_current_admin),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempts = await workflow.list_all(state=state, limit=limit, offset=offset)
    return TransferListResponse(
        total=len(attempts),
        transfers=[TransferResponse.model_validate(item) for item in attempts],
    )


@router.post("/transfers/sweep", response_model=SweepResponse)
async def sweep_transfers(
    _: AccountDomain = Depends(get_current_admin),
    sweeper: TransferSweeper = Depends(get_transfer_sweeper),
):
    return SweepResponse(expired=await sweeper.sweep_once())


@router.post("/devices/{device_id}/recover", response_model=DeviceResponse)
async def recover_device(
    device_id: str,
    payload: DeviceRecoverRequest,
    admin: AccountDomain = Depends(get_current_admin),
    service: DeviceService = Depends(get_device_service),
    db: AsyncSession = Depends(get_db_session),
):
    device = await service.recover_device(device_id, admin.id, note=payload.note, is_admin=True)
    await db.commit()
    return DeviceResponse.model_validate(device)
