"""Anonymous device status lookup."""

from fastapi import APIRouter, Depends, Query

from deviceguard.interfaces.http.deps import get_status_checker
from deviceguard.modules.devices import PublicStatusChecker
from deviceguard.schemas import PublicStatusResponse

router = APIRouter()


@router.get("", response_model=PublicStatusResponse, summary="Check whether a device is reported missing or stolen")
async def check_status(
    identifier: str = Query(..., min_length=1, max_length=128, description="IMEI or serial number"),
    checker: PublicStatusChecker = Depends(get_status_checker),
):
    result = await checker.check_status(identifier)
    return PublicStatusResponse(registered=result.registered, status=result.status)
