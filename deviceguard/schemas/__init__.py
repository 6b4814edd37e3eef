"""Pydantic schemas used across the project."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from deviceguard.modules.devices.models import DeviceStatus, DeviceType, PublicStatus
from deviceguard.modules.transfers.models import (
    FailureReason,
    TransferReason,
    TransferState,
)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)


class TokenData(BaseModel):
    account_id: str
    username: str
    role: str


class AccountCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    email: Optional[str] = Field(default=None, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    phone_number: Optional[str] = Field(default=None, max_length=32, pattern=r"^\+?[0-9 ()-]{6,}$")


class AccountResponse(BaseModel):
    id: str
    username: str
    role: str
    is_active: bool
    email: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccountLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account_id: str
    username: str
    role: str


class DeviceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    device_type: DeviceType = DeviceType.PHONE
    imei: Optional[str] = Field(default=None, max_length=64)
    imei2: Optional[str] = Field(default=None, max_length=64)
    serial_number: Optional[str] = Field(default=None, max_length=128)


class DeviceResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    device_type: DeviceType
    status: DeviceStatus
    imei: Optional[str] = None
    imei2: Optional[str] = None
    serial_number: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DeviceListResponse(BaseModel):
    total: int
    devices: list[DeviceResponse]


class StatusEventResponse(BaseModel):
    status: DeviceStatus
    actor_id: str
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeviceReportRequest(BaseModel):
    status: Literal["reported_missing", "reported_stolen"]
    location: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)


class DeviceRecoverRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class PublicStatusResponse(BaseModel):
    registered: bool
    status: PublicStatus


class TransferCreate(BaseModel):
    device_id: str
    recipient: str = Field(..., min_length=1, max_length=254, description="Recipient account id or email")


class TransferVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class TransferReasonRequest(BaseModel):
    reason_code: TransferReason
    custom_reason: Optional[str] = Field(default=None, max_length=500)


class ChallengeResponse(BaseModel):
    destination: str
    expires_at: datetime
    attempts_remaining: int

    model_config = ConfigDict(from_attributes=True)


class TransferResponse(BaseModel):
    id: str
    device_id: str
    from_owner_id: str
    to_owner_ref: str
    to_owner_id: str
    state: TransferState
    reason_code: Optional[TransferReason] = None
    custom_reason: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    expires_at: datetime
    completed_at: Optional[datetime] = None
    challenge: Optional[ChallengeResponse] = None

    model_config = ConfigDict(from_attributes=True)


class TransferListResponse(BaseModel):
    total: int
    transfers: list[TransferResponse]


class SweepResponse(BaseModel):
    expired: int


class ErrorDetail(BaseModel):
    code: str
    message: str
