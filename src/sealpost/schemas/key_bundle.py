"""Key bundle Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from sealpost.core.settings import settings

from .common import Base64Blob


class KeyBundlePublish(BaseModel):
    """Schema for publishing a device's key bundle."""

    device_id: str = Field(..., alias="deviceId", min_length=1)
    identity_key: Base64Blob = Field(..., alias="identityKey", description="Base64 long-term identity key")
    signed_pre_key: Base64Blob = Field(..., alias="signedPreKey", description="Base64 signed pre-key")
    signature: Base64Blob = Field(..., description="Base64 signature over the signed pre-key")
    one_time_pre_keys: list[Base64Blob] = Field(
        default_factory=list,
        alias="oneTimePreKeys",
        max_length=settings.max_one_time_pre_keys,
        description="Base64 one-time pre-keys, consumed one per fetch",
    )


class KeyBundlePublished(BaseModel):
    """Handle returned after publishing; never echoes the pre-key pool."""

    key_bundle_id: str = Field(..., serialization_alias="keyBundleId")
    device_id: str = Field(..., serialization_alias="deviceId")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")


class KeyBundleResponse(BaseModel):
    """Bundle handed to a peer starting a session with one device."""

    device_id: str = Field(..., serialization_alias="deviceId")
    user_id: str = Field(..., serialization_alias="userId")
    device_public_key: str = Field(..., serialization_alias="devicePublicKey")
    identity_key: str = Field(..., serialization_alias="identityKey")
    signed_pre_key: str = Field(..., serialization_alias="signedPreKey")
    signature: str
    one_time_pre_key: str | None = Field(None, serialization_alias="oneTimePreKey")


class KeyBundleSummaryResponse(BaseModel):
    """Per-device entry in a user's bundle listing."""

    device_id: str = Field(..., serialization_alias="deviceId")
    public_key: str = Field(..., serialization_alias="publicKey")
    identity_key: str = Field(..., serialization_alias="identityKey")
    signed_pre_key: str = Field(..., serialization_alias="signedPreKey")
    signature: str


class UserKeyBundles(BaseModel):
    """All published bundles for one user."""

    user_id: str = Field(..., serialization_alias="userId")
    bundles: list[KeyBundleSummaryResponse]


class PreKeyCount(BaseModel):
    """Remaining one-time pre-keys for a device."""

    device_id: str = Field(..., serialization_alias="deviceId")
    remaining: int
