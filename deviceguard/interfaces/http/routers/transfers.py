"""Ownership transfer endpoints.

Each step is its own request; the attempt id returned by ``POST /transfer``
carries the state between them.
"""

from fastapi import APIRouter, Depends, status

from deviceguard.core.security import get_current_account
from deviceguard.interfaces.http.deps import get_transfer_workflow
from deviceguard.modules.accounts import Account as AccountDomain
from deviceguard.modules.transfers import TransferWorkflow
from deviceguard.schemas import (
    TransferCreate,
    TransferListResponse,
    TransferReasonRequest,
    TransferResponse,
    TransferVerifyRequest,
)

router = APIRouter()


def _to_schema(attempt) -> TransferResponse:
    return TransferResponse.model_validate(attempt)


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED, summary="Start a transfer")
async def initiate_transfer(
    payload: TransferCreate,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.initiate(account.id, payload.device_id, payload.recipient)
    return _to_schema(attempt)


@router.get("", response_model=TransferListResponse, summary="Transfers sent or received by the current account")
async def list_transfers(
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempts = await workflow.list_for_account(account.id)
    return TransferListResponse(total=len(attempts), transfers=[_to_schema(item) for item in attempts])


@router.get("/{attempt_id}", response_model=TransferResponse, summary="Transfer details")
async def get_transfer(
    attempt_id: str,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.get(attempt_id, account.id, is_admin=account.is_admin())
    return _to_schema(attempt)


@router.post("/{attempt_id}/verify", response_model=TransferResponse, summary="Submit the one-time code")
async def verify_transfer(
    attempt_id: str,
    payload: TransferVerifyRequest,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.verify(attempt_id, account.id, payload.code)
    return _to_schema(attempt)


@router.post("/{attempt_id}/reason", response_model=TransferResponse, summary="Give the reason and complete")
async def submit_reason(
    attempt_id: str,
    payload: TransferReasonRequest,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    await workflow.submit_reason(attempt_id, account.id, payload.reason_code, payload.custom_reason)
    attempt = await workflow.complete(attempt_id, account.id)
    return _to_schema(attempt)


@router.post("/{attempt_id}/complete", response_model=TransferResponse, summary="Commit the ownership change")
async def complete_transfer(
    attempt_id: str,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.complete(attempt_id, account.id)
    return _to_schema(attempt)


@router.post("/{attempt_id}/resend", response_model=TransferResponse, summary="Send a fresh code")
async def resend_code(
    attempt_id: str,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.resend(attempt_id, account.id)
    return _to_schema(attempt)


@router.post("/{attempt_id}/cancel", response_model=TransferResponse, summary="Abandon the transfer")
async def cancel_transfer(
    attempt_id: str,
    account: AccountDomain = Depends(get_current_account),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
):
    attempt = await workflow.cancel(attempt_id, account.id)
    return _to_schema(attempt)
