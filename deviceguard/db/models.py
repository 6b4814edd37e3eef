"""SQLAlchemy ORM models."""
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from deviceguard.infrastructure.database.base import Base
from deviceguard.infrastructure.database.types import UTCDateTime

# States in which a transfer attempt still holds the device's transfer_pending lock.
OPEN_TRANSFER_STATES = ("initiated", "challenge_issued", "identity_verified", "reason_collected")
_OPEN_STATE_PREDICATE = text(
    "state IN (" + ", ".join(f"'{state}'" for state in OPEN_TRANSFER_STATES) + ")"
)


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    email = Column(String(254), unique=True, index=True)
    phone_number = Column(String(32))
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime)
    last_login_at = Column(UTCDateTime)


class Device(Base):
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    device_type = Column(String(20), nullable=False, default="phone")
    status = Column(String(20), nullable=False, default="active", index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime)

    identifiers = relationship(
        "DeviceIdentifier",
        back_populates="device",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history = relationship(
        "DeviceStatusEvent",
        back_populates="device",
        order_by="DeviceStatusEvent.id",
    )


class DeviceIdentifier(Base):
    __tablename__ = "device_identifiers"

    # The normalized value alone is unique: a serial may never shadow another device's IMEI.
    value = Column(String(64), primary_key=True)
    kind = Column(String(10), nullable=False)
    slot = Column(String(10), nullable=False)
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)

    device = relationship("Device", back_populates="identifiers")


class DeviceStatusEvent(Base):
    __tablename__ = "device_status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    actor_id = Column(String(36), nullable=False)
    note = Column(Text)
    created_at = Column(UTCDateTime, nullable=False)

    device = relationship("Device", back_populates="history")


class TransferAttempt(Base):
    __tablename__ = "transfer_attempts"
    __table_args__ = (
        Index(
            "uq_transfer_attempts_open_device",
            "device_id",
            unique=True,
            sqlite_where=_OPEN_STATE_PREDICATE,
            postgresql_where=_OPEN_STATE_PREDICATE,
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)
    from_owner_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    to_owner_ref = Column(String(254), nullable=False)
    to_owner_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    reason_code = Column(String(30))
    custom_reason = Column(Text)
    state = Column(String(20), nullable=False, default="initiated", index=True)
    failure_reason = Column(String(40))
    challenge_id = Column(String(36))
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    completed_at = Column(UTCDateTime)

    challenges = relationship("OtpChallenge", back_populates="transfer_attempt")


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    transfer_attempt_id = Column(
        String(36), ForeignKey("transfer_attempts.id"), nullable=False, index=True
    )
    code = Column(String(8), nullable=False)
    destination = Column(String(254), nullable=False)
    issued_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    attempts_remaining = Column(Integer, nullable=False)
    failed_attempts = Column(Integer, nullable=False, default=0)
    consumed = Column(Boolean, nullable=False, default=False)
    invalidated_at = Column(UTCDateTime)
    version = Column(Integer, nullable=False, default=1)

    transfer_attempt = relationship("TransferAttempt", back_populates="challenges")
