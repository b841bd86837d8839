# src/sealpost/api/v1/endpoints/devices.py
"""Device registration endpoints for the Sealpost API."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from sealpost.core.settings import settings
from sealpost.db.time import as_utc
from sealpost.models import Device
from sealpost.schemas.device import (
    DeviceList,
    DeviceRegister,
    DeviceRegistered,
    DeviceResponse,
    DeviceSummary,
)

from ..dependencies import DeviceRegistryDep

router = APIRouter(prefix="/devices", tags=["devices"])


def _serialize_device(device: Device) -> DeviceResponse:
    return DeviceResponse(
        id=device.id,
        user_id=device.user_id,
        public_key=device.public_key_b64,
        created_at=as_utc(device.created_at),
        last_seen_at=as_utc(device.last_seen_at),
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=DeviceRegistered)
async def register_device(payload: DeviceRegister, devices: DeviceRegistryDep) -> DeviceRegistered:
    """Register a device, or refresh it if the user already registered this key."""
    device = devices.register(payload.user_id, payload.public_key)
    return DeviceRegistered(
        device_id=device.id,
        user_id=device.user_id,
        public_key=device.public_key_b64,
        created_at=as_utc(device.created_at),
    )


@router.get("", response_model=DeviceList)
async def list_devices(
    devices: DeviceRegistryDep,
    user_id: str = Query(..., alias="userId", min_length=1, max_length=settings.user_id_max_length),
) -> DeviceList:
    """List a user's devices, oldest first, with key bundle availability."""
    listings = devices.list_by_user(user_id)
    return DeviceList(
        user_id=user_id,
        devices=[
            DeviceSummary(
                device_id=listing.device.id,
                public_key=listing.device.public_key_b64,
                last_seen_at=as_utc(listing.device.last_seen_at),
                has_key_bundle=listing.has_key_bundle,
            )
            for listing in listings
        ],
    )


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(device_id: str, devices: DeviceRegistryDep) -> DeviceResponse:
    """Return a single device record."""
    return _serialize_device(devices.get_by_id(device_id))
