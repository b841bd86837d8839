"""Device-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from sealpost.core.settings import settings

from .common import Base64Blob


class DeviceRegister(BaseModel):
    """Schema for registering (or re-registering) a device."""

    user_id: str = Field(..., alias="userId", min_length=1, max_length=settings.user_id_max_length)
    public_key: Base64Blob = Field(..., alias="publicKey", description="Base64-encoded device public key")


class DeviceRegistered(BaseModel):
    """Schema returned after a successful registration."""

    device_id: str = Field(..., serialization_alias="deviceId")
    user_id: str = Field(..., serialization_alias="userId")
    public_key: str = Field(..., serialization_alias="publicKey")
    created_at: datetime = Field(..., serialization_alias="createdAt")


class DeviceSummary(BaseModel):
    """One entry of a user's device listing."""

    device_id: str = Field(..., serialization_alias="deviceId")
    public_key: str = Field(..., serialization_alias="publicKey")
    last_seen_at: datetime = Field(..., serialization_alias="lastSeenAt")
    has_key_bundle: bool = Field(..., serialization_alias="hasKeyBundle")


class DeviceList(BaseModel):
    """Devices owned by one user, oldest first."""

    user_id: str = Field(..., serialization_alias="userId")
    devices: list[DeviceSummary]


class DeviceResponse(BaseModel):
    """Schema for a single device record."""

    id: str
    user_id: str = Field(..., serialization_alias="userId")
    public_key: str = Field(..., serialization_alias="publicKey")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    last_seen_at: datetime = Field(..., serialization_alias="lastSeenAt")
