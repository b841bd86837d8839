# src/sealpost/api/v1/endpoints/messages.py
"""Envelope relay endpoints for the Sealpost API."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from sealpost.core.settings import settings
from sealpost.db.time import as_utc
from sealpost.schemas.common import encode_b64
from sealpost.schemas.envelope import (
    AckResult,
    CleanupResult,
    EnvelopeAck,
    EnvelopeResponse,
    EnvelopeSend,
    EnvelopeSent,
    Inbox,
)
from sealpost.services.envelopes import InboxEntry

from ..dependencies import EnvelopeStoreDep

router = APIRouter(prefix="/messages", tags=["messages"])


def _serialize_entry(entry: InboxEntry) -> EnvelopeResponse:
    """Serialize an inbox entry into API payload form."""
    envelope = entry.envelope
    return EnvelopeResponse(
        id=envelope.id,
        sender_id=envelope.sender_id,
        sender_user_id=entry.sender_user_id,
        sender_public_key=encode_b64(entry.sender_public_key),
        ciphertext=encode_b64(envelope.ciphertext),
        nonce=encode_b64(envelope.nonce),
        ephemeral_key=encode_b64(envelope.ephemeral_key),
        created_at=as_utc(envelope.created_at),
    )


@router.post("/send", status_code=status.HTTP_201_CREATED, response_model=EnvelopeSent)
async def send_envelope(payload: EnvelopeSend, envelopes: EnvelopeStoreDep) -> EnvelopeSent:
    """Store an end-to-end encrypted envelope for a recipient device."""
    envelope = envelopes.send(
        payload.sender_id,
        payload.recipient_id,
        ciphertext=payload.ciphertext,
        nonce=payload.nonce,
        ephemeral_key=payload.ephemeral_key,
    )
    return EnvelopeSent(envelope_id=envelope.id, created_at=as_utc(envelope.created_at))


@router.get("/inbox/{device_id}", response_model=Inbox)
async def get_inbox(
    device_id: str,
    envelopes: EnvelopeStoreDep,
    limit: int = Query(settings.inbox_max_limit, ge=1, le=settings.inbox_max_limit),
) -> Inbox:
    """Get undelivered envelopes for a device, oldest first."""
    entries = envelopes.inbox(device_id, limit=limit)
    return Inbox(
        device_id=device_id,
        count=len(entries),
        envelopes=[_serialize_entry(entry) for entry in entries],
    )


@router.post("/ack", response_model=AckResult)
async def acknowledge_envelopes(payload: EnvelopeAck, envelopes: EnvelopeStoreDep) -> AckResult:
    """Mark envelopes as delivered; repeated acknowledgements are no-ops."""
    return AckResult(acknowledged=envelopes.ack(payload.envelope_ids))


@router.delete("/cleanup", response_model=CleanupResult)
async def cleanup_envelopes(
    envelopes: EnvelopeStoreDep,
    max_age_seconds: int = Query(settings.retention_seconds, alias="maxAgeSeconds", ge=0),
) -> CleanupResult:
    """Delete envelopes older than the retention window, delivered or not."""
    return CleanupResult(deleted=envelopes.cleanup(max_age_seconds))
