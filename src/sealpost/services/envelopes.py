"""Durable per-recipient envelope queue."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from sealpost.core.errors import NotFoundError, ValidationError
from sealpost.core.settings import settings
from sealpost.db.session import storage_errors
from sealpost.db.time import as_utc, cutoff_before, utcnow
from sealpost.models import Envelope
from sealpost.services.device_registry import DeviceRegistry
from sealpost.services.presence import PresenceHub

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboxEntry:
    """An undelivered envelope plus the sender identity resolved for display."""

    envelope: Envelope
    sender_user_id: str
    sender_public_key: bytes


def _require_blob(value: bytes | None, field: str, max_bytes: int) -> bytes:
    if not isinstance(value, bytes | bytearray) or not value:
        raise ValidationError(f"{field} must be a non-empty byte string")
    if len(value) > max_bytes:
        raise ValidationError(f"{field} must be at most {max_bytes} bytes")
    return bytes(value)


class EnvelopeStore:
    """Owns :class:`Envelope` rows and drives presence notifications on send."""

    def __init__(
        self,
        db: Session,
        presence: PresenceHub | None = None,
        devices: DeviceRegistry | None = None,
    ) -> None:
        self.db = db
        self.presence = presence
        self.devices = devices or DeviceRegistry(db)

    def send(
        self,
        sender_id: str,
        recipient_id: str,
        ciphertext: bytes,
        nonce: bytes,
        ephemeral_key: bytes | None = None,
    ) -> Envelope:
        """Store a new envelope for ``recipient_id`` and hint the recipient.

        The write is committed before any push is attempted; a missing or
        failing push leaves the stored envelope untouched.

        Raises:
            NotFoundError: If the sender or recipient device does not exist
            ValidationError: If ciphertext, nonce or ephemeral key are malformed
            StorageUnavailableError: If the envelope could not be stored
        """
        ciphertext = _require_blob(ciphertext, "ciphertext", settings.max_ciphertext_bytes)
        nonce = _require_blob(nonce, "nonce", settings.max_nonce_bytes)
        if ephemeral_key is not None:
            ephemeral_key = _require_blob(ephemeral_key, "ephemeral key", settings.public_key_max_bytes)

        known = self.devices.get_many((sender_id, recipient_id))
        if sender_id not in known:
            raise NotFoundError("Sender device not found")
        if recipient_id not in known:
            raise NotFoundError("Recipient device not found")

        envelope = Envelope(
            sender_id=sender_id,
            recipient_id=recipient_id,
            ciphertext=ciphertext,
            nonce=nonce,
            ephemeral_key=ephemeral_key,
            created_at=utcnow(),
        )
        with storage_errors(self.db, "envelope send"):
            self.db.add(envelope)
            self.db.commit()
            self.db.refresh(envelope)

        logger.info(
            "Envelope stored: envelope_id=%s sender_id=%s recipient_id=%s",
            envelope.id,
            sender_id,
            recipient_id,
        )
        self._notify_recipient(envelope)
        return envelope

    def _notify_recipient(self, envelope: Envelope) -> None:
        if self.presence is None:
            return
        frame = {
            "type": "new_message",
            "envelopeId": envelope.id,
            "senderId": envelope.sender_id,
            "timestamp": as_utc(envelope.created_at).isoformat(),
        }
        try:
            pushed = self.presence.push(envelope.recipient_id, frame)
        except Exception:  # the envelope is already durable
            logger.warning(
                "Presence push failed: envelope_id=%s recipient_id=%s",
                envelope.id,
                envelope.recipient_id,
                exc_info=True,
            )
            return
        logger.debug(
            "Presence push %s: envelope_id=%s recipient_id=%s",
            "delivered" if pushed else "skipped",
            envelope.id,
            envelope.recipient_id,
        )

    def inbox(self, device_id: str, limit: int = 100) -> list[InboxEntry]:
        """Return up to ``limit`` undelivered envelopes for ``device_id``, oldest first."""
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        limit = min(limit, settings.inbox_max_limit)

        stmt = (
            select(Envelope)
            .where(Envelope.recipient_id == device_id, Envelope.delivered_at.is_(None))
            .order_by(Envelope.created_at.asc(), Envelope.order_index.asc())
            .limit(limit)
        )
        with storage_errors(self.db, "inbox read"):
            envelopes = self.db.scalars(stmt).all()

        senders = self.devices.get_many(envelope.sender_id for envelope in envelopes)
        entries = []
        for envelope in envelopes:
            sender = senders.get(envelope.sender_id)
            if sender is None:
                # Device rows are only removed administratively; skip orphans.
                logger.warning("Envelope %s references missing sender %s", envelope.id, envelope.sender_id)
                continue
            entries.append(
                InboxEntry(envelope=envelope, sender_user_id=sender.user_id, sender_public_key=sender.public_key)
            )
        return entries

    def ack(self, envelope_ids: Sequence[str]) -> int:
        """Mark the listed undelivered envelopes as delivered.

        Unknown and already-delivered ids are ignored, so repeating a call is a
        no-op. Returns the number of envelopes that changed state.

        Raises:
            ValidationError: If the list is empty or longer than the cap
        """
        ids = list(envelope_ids)
        if not ids:
            raise ValidationError("at least one envelope id is required")
        if len(ids) > settings.ack_max_ids:
            raise ValidationError(f"at most {settings.ack_max_ids} envelope ids may be acknowledged at once")

        stmt = (
            update(Envelope)
            .where(Envelope.id.in_(sorted(set(ids))), Envelope.delivered_at.is_(None))
            .values(delivered_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with storage_errors(self.db, "envelope acknowledgement"):
            result = self.db.execute(stmt)
            self.db.commit()

        logger.info("Envelopes acknowledged: count=%d", result.rowcount)
        return result.rowcount

    def cleanup_batch(self, max_age_seconds: float, batch_size: int, now: datetime | None = None) -> int:
        """Delete at most ``batch_size`` envelopes past retention; return the count.

        An envelope is eligible when it was delivered before the cutoff, or is
        still undelivered and was created before the cutoff. An envelope whose
        timestamp equals the cutoff is kept.
        """
        if max_age_seconds < 0:
            raise ValidationError("max age must not be negative")
        if batch_size < 1:
            raise ValidationError("batch size must be at least 1")

        cutoff = cutoff_before(max_age_seconds, now)
        expired = or_(
            Envelope.delivered_at < cutoff,
            and_(Envelope.delivered_at.is_(None), Envelope.created_at < cutoff),
        )
        with storage_errors(self.db, "envelope cleanup"):
            keys = self.db.scalars(
                select(Envelope.order_index).where(expired).order_by(Envelope.order_index).limit(batch_size)
            ).all()
            if not keys:
                self.db.commit()
                return 0
            result = self.db.execute(
                delete(Envelope)
                .where(Envelope.order_index.in_(keys), expired)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        return result.rowcount

    def cleanup(self, max_age_seconds: float, batch_size: int | None = None, now: datetime | None = None) -> int:
        """Delete every envelope past retention in bounded passes; return the total."""
        batch_size = batch_size or settings.retention_sweep_batch_size
        reference = now or utcnow()
        total = 0
        while True:
            deleted = self.cleanup_batch(max_age_seconds, batch_size, now=reference)
            total += deleted
            if deleted < batch_size:
                break
        logger.info("Old envelopes cleaned up: deleted=%d", total)
        return total
