# src/sealpost/models/key_bundle.py
"""Models describing published key-agreement material."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from sealpost.db.session import Base
from sealpost.db.time import utcnow


class KeyBundle(Base):
    """Identity key, signed pre-key and signature published by one device.

    Exactly one bundle exists per device. One-time pre-keys are stored
    separately in :class:`OneTimePreKey` so each can be claimed individually.
    """

    __tablename__ = "key_bundle"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    device_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("device.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    identity_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    signed_pre_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    # Signature over the signed pre-key; verified by peers, opaque here.
    signature: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    # Bumped on every publish; one-time pre-keys carry the generation they came with.
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<KeyBundle(id={self.id}, device_id={self.device_id})>"


class OneTimePreKey(Base):
    """Single-use pre-key belonging to a device's bundle.

    Keys are handed out oldest first (ascending ``id``) and deleted on claim.
    """

    __tablename__ = "one_time_pre_key"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("device.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<OneTimePreKey(id={self.id}, device_id={self.device_id})>"
