"""relay core tables

Revision ID: 5a1c0e2b9f31
Revises:
Create Date: 2026-10-19 09:12:44.318552

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5a1c0e2b9f31"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create device, key bundle, one-time pre-key and envelope tables."""
    op.create_table(
        "device",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("public_key", sa.LargeBinary(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "public_key", name="uq_device_user_public_key"),
    )
    op.create_index("ix_device_user_id", "device", ["user_id"])

    op.create_table(
        "key_bundle",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("device_id", sa.String(length=36), nullable=False),
        sa.Column("identity_key", sa.LargeBinary(), nullable=False),
        sa.Column("signed_pre_key", sa.LargeBinary(), nullable=False),
        sa.Column("signature", sa.LargeBinary(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("generation", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["device.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("device_id"),
    )

    op.create_table(
        "one_time_pre_key",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("device_id", sa.String(length=36), nullable=False),
        sa.Column("public_key", sa.LargeBinary(), nullable=False),
        sa.Column("generation", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["device.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_one_time_pre_key_device_id", "one_time_pre_key", ["device_id"])

    op.create_table(
        "envelope",
        sa.Column("order_index", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("sender_id", sa.String(length=36), nullable=False),
        sa.Column("recipient_id", sa.String(length=36), nullable=False),
        sa.Column("ciphertext", sa.LargeBinary(), nullable=False),
        sa.Column("nonce", sa.LargeBinary(), nullable=False),
        sa.Column("ephemeral_key", sa.LargeBinary(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["recipient_id"], ["device.id"]),
        sa.ForeignKeyConstraint(["sender_id"], ["device.id"]),
        sa.PrimaryKeyConstraint("order_index"),
        sa.UniqueConstraint("id"),
    )
    op.create_index("ix_envelope_created_at", "envelope", ["created_at"])
    op.create_index("ix_envelope_inbox", "envelope", ["recipient_id", "delivered_at", "order_index"])


def downgrade() -> None:
    """Drop the relay tables."""
    op.drop_index("ix_envelope_inbox", table_name="envelope")
    op.drop_index("ix_envelope_created_at", table_name="envelope")
    op.drop_table("envelope")
    op.drop_index("ix_one_time_pre_key_device_id", table_name="one_time_pre_key")
    op.drop_table("one_time_pre_key")
    op.drop_table("key_bundle")
    op.drop_index("ix_device_user_id", table_name="device")
    op.drop_table("device")
