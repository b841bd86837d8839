"""Envelope-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from sealpost.core.settings import settings

from .common import Base64Blob


class EnvelopeSend(BaseModel):
    """Schema for submitting an encrypted envelope."""

    sender_id: str = Field(..., alias="senderId", min_length=1)
    recipient_id: str = Field(..., alias="recipientId", min_length=1)
    ciphertext: Base64Blob = Field(..., description="Base64-encoded encrypted message")
    nonce: Base64Blob = Field(..., description="Base64-encoded AEAD nonce")
    ephemeral_key: Base64Blob | None = Field(
        None,
        alias="ephemeralKey",
        description="Base64 ephemeral public key, only on a conversation's first envelope",
    )


class EnvelopeSent(BaseModel):
    """Schema returned once an envelope is durably stored."""

    envelope_id: str = Field(..., serialization_alias="envelopeId")
    created_at: datetime = Field(..., serialization_alias="createdAt")


class EnvelopeResponse(BaseModel):
    """Schema for an undelivered envelope in an inbox."""

    id: str
    sender_id: str = Field(..., serialization_alias="senderId")
    sender_user_id: str = Field(..., serialization_alias="senderUserId")
    sender_public_key: str = Field(..., serialization_alias="senderPublicKey")
    ciphertext: str
    nonce: str
    ephemeral_key: str | None = Field(None, serialization_alias="ephemeralKey")
    created_at: datetime = Field(..., serialization_alias="createdAt")


class Inbox(BaseModel):
    """Undelivered envelopes for a device, oldest first."""

    device_id: str = Field(..., serialization_alias="deviceId")
    count: int
    envelopes: list[EnvelopeResponse]


class EnvelopeAck(BaseModel):
    """Schema for acknowledging received envelopes."""

    envelope_ids: list[str] = Field(..., alias="envelopeIds", min_length=1, max_length=settings.ack_max_ids)


class AckResult(BaseModel):
    """Number of envelopes that moved to delivered."""

    acknowledged: int


class CleanupResult(BaseModel):
    """Number of envelopes removed by a retention sweep."""

    deleted: int
