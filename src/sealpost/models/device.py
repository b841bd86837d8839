# src/sealpost/models/device.py
"""SQLAlchemy model for registered client devices."""

from __future__ import annotations

import base64
import uuid
from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sealpost.db.session import Base
from sealpost.db.time import utcnow


def new_device_id() -> str:
    """Return a fresh opaque device identifier."""
    return str(uuid.uuid4())


class Device(Base):
    """Public half of one client-held key pair, owned by an external user id.

    A user may own several devices; the pair ``(user_id, public_key)`` is
    unique, so registering the same pair again touches the existing row.
    """

    __tablename__ = "device"
    __table_args__ = (
        UniqueConstraint("user_id", "public_key", name="uq_device_user_public_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_device_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def public_key_b64(self) -> str:
        """Return the device public key as standard base64."""
        return base64.b64encode(self.public_key).decode()

    def __repr__(self) -> str:
        return f"<Device(id={self.id}, user_id={self.user_id})>"
