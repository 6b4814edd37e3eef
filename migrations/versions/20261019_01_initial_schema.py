"""accounts, devices and ownership transfers

Revision ID: 3f9c1d2e7a10
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f9c1d2e7a10"
down_revision = None
branch_labels = None
depends_on = None

_OPEN_STATES = "state IN ('initiated', 'challenge_issued', 'identity_verified', 'reason_collected')"


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email", sa.String(length=254)),
        sa.Column("phone_number", sa.String(length=32)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("last_login_at", sa.DateTime()),
    )
    op.create_index("ix_accounts_username", "accounts", ["username"], unique=True)
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)

    op.create_table(
        "devices",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("device_type", sa.String(length=20), nullable=False, server_default="phone"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_devices_owner_id", "devices", ["owner_id"])
    op.create_index("ix_devices_status", "devices", ["status"])

    op.create_table(
        "device_identifiers",
        sa.Column("value", sa.String(length=64), primary_key=True),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("slot", sa.String(length=10), nullable=False),
        sa.Column("device_id", sa.String(length=36), sa.ForeignKey("devices.id"), nullable=False),
    )
    op.create_index("ix_device_identifiers_device_id", "device_identifiers", ["device_id"])

    op.create_table(
        "device_status_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.String(length=36), sa.ForeignKey("devices.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_device_status_events_device_id", "device_status_events", ["device_id"])

    op.create_table(
        "transfer_attempts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("device_id", sa.String(length=36), sa.ForeignKey("devices.id"), nullable=False),
        sa.Column("from_owner_id", sa.String(length=36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("to_owner_ref", sa.String(length=254), nullable=False),
        sa.Column("to_owner_id", sa.String(length=36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("reason_code", sa.String(length=30)),
        sa.Column("custom_reason", sa.Text()),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="initiated"),
        sa.Column("failure_reason", sa.String(length=40)),
        sa.Column("challenge_id", sa.String(length=36)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_transfer_attempts_device_id", "transfer_attempts", ["device_id"])
    op.create_index("ix_transfer_attempts_from_owner_id", "transfer_attempts", ["from_owner_id"])
    op.create_index("ix_transfer_attempts_state", "transfer_attempts", ["state"])
    op.create_index("ix_transfer_attempts_expires_at", "transfer_attempts", ["expires_at"])
    op.create_index(
        "uq_transfer_attempts_open_device",
        "transfer_attempts",
        ["device_id"],
        unique=True,
        sqlite_where=sa.text(_OPEN_STATES),
        postgresql_where=sa.text(_OPEN_STATES),
    )

    op.create_table(
        "otp_challenges",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "transfer_attempt_id",
            sa.String(length=36),
            sa.ForeignKey("transfer_attempts.id"),
            nullable=False,
        ),
        sa.Column("code", sa.String(length=8), nullable=False),
        sa.Column("destination", sa.String(length=254), nullable=False),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("attempts_remaining", sa.Integer(), nullable=False),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consumed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("invalidated_at", sa.DateTime()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_otp_challenges_transfer_attempt_id", "otp_challenges", ["transfer_attempt_id"])


def downgrade() -> None:
    op.drop_index("ix_otp_challenges_transfer_attempt_id", table_name="otp_challenges")
    op.drop_table("otp_challenges")

    op.drop_index("uq_transfer_attempts_open_device", table_name="transfer_attempts")
    op.drop_index("ix_transfer_attempts_expires_at", table_name="transfer_attempts")
    op.drop_index("ix_transfer_attempts_state", table_name="transfer_attempts")
    op.drop_index("ix_transfer_attempts_from_owner_id", table_name="transfer_attempts")
    op.drop_index("ix_transfer_attempts_device_id", table_name="transfer_attempts")
    op.drop_table("transfer_attempts")

    op.drop_index("ix_device_status_events_device_id", table_name="device_status_events")
    op.drop_table("device_status_events")

    op.drop_index("ix_device_identifiers_device_id", table_name="device_identifiers")
    op.drop_table("device_identifiers")

    op.drop_index("ix_devices_status", table_name="devices")
    op.drop_index("ix_devices_owner_id", table_name="devices")
    op.drop_table("devices")

    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_index("ix_accounts_username", table_name="accounts")
    op.drop_table("accounts")
