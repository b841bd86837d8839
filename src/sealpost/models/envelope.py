# src/sealpost/models/envelope.py
"""Models describing encrypted envelopes queued for a recipient device."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from sealpost.db.session import Base
from sealpost.db.time import utcnow


class Envelope(Base):
    """Encrypted message waiting in a recipient device's queue.

    Envelopes are stored on the server but are never decrypted. An envelope
    with ``delivered_at`` set has been acknowledged and no longer appears in
    the recipient's inbox.
    """

    __tablename__ = "envelope"
    __table_args__ = (
        Index("ix_envelope_inbox", "recipient_id", "delivered_at", "order_index"),
    )

    # Arrival sequence; breaks ties between envelopes sharing a timestamp.
    order_index: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid.uuid4()),
    )

    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("device.id"), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(36), ForeignKey("device.id"), nullable=False)

    ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    # Only present on the first envelope of a conversation.
    ephemeral_key: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def delivered(self) -> bool:
        """Return True once the recipient has acknowledged the envelope."""
        return self.delivered_at is not None

    def __repr__(self) -> str:
        return f"<Envelope(id={self.id}, recipient_id={self.recipient_id})>"
