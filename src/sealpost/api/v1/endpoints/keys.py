# src/sealpost/api/v1/endpoints/keys.py
"""Key bundle endpoints used to bootstrap end-to-end sessions."""

from __future__ import annotations

from fastapi import APIRouter, status

from sealpost.db.time import as_utc
from sealpost.schemas.common import encode_b64
from sealpost.schemas.key_bundle import (
    KeyBundlePublish,
    KeyBundlePublished,
    KeyBundleResponse,
    KeyBundleSummaryResponse,
    PreKeyCount,
    UserKeyBundles,
)

from ..dependencies import KeyBundleStoreDep

router = APIRouter(prefix="/keys", tags=["keys"])


@router.post("/publish", status_code=status.HTTP_201_CREATED, response_model=KeyBundlePublished)
async def publish_key_bundle(payload: KeyBundlePublish, bundles: KeyBundleStoreDep) -> KeyBundlePublished:
    """Publish or replace the key bundle of a device."""
    handle = bundles.publish(
        payload.device_id,
        identity_key=payload.identity_key,
        signed_pre_key=payload.signed_pre_key,
        signature=payload.signature,
        one_time_pre_keys=payload.one_time_pre_keys,
    )
    return KeyBundlePublished(
        key_bundle_id=handle.bundle_id,
        device_id=handle.device_id,
        updated_at=as_utc(handle.updated_at),
    )


@router.get("/user/{user_id}", response_model=UserKeyBundles)
async def get_user_key_bundles(user_id: str, bundles: KeyBundleStoreDep) -> UserKeyBundles:
    """List bundles for every device of a user; consumes no one-time pre-keys."""
    summaries = bundles.fetch_all_for_user(user_id)
    return UserKeyBundles(
        user_id=user_id,
        bundles=[
            KeyBundleSummaryResponse(
                device_id=summary.device_id,
                public_key=encode_b64(summary.device_public_key),
                identity_key=encode_b64(summary.identity_key),
                signed_pre_key=encode_b64(summary.signed_pre_key),
                signature=encode_b64(summary.signature),
            )
            for summary in summaries
        ],
    )


@router.get("/{device_id}/count", response_model=PreKeyCount)
async def count_one_time_pre_keys(device_id: str, bundles: KeyBundleStoreDep) -> PreKeyCount:
    """Report how many one-time pre-keys a device has left."""
    return PreKeyCount(device_id=device_id, remaining=bundles.remaining_one_time_pre_keys(device_id))


@router.get("/{device_id}", response_model=KeyBundleResponse)
async def fetch_key_bundle(device_id: str, bundles: KeyBundleStoreDep) -> KeyBundleResponse:
    """Fetch a device's bundle, consuming one one-time pre-key if any remain."""
    bundle = bundles.fetch(device_id)
    return KeyBundleResponse(
        device_id=bundle.device_id,
        user_id=bundle.user_id,
        device_public_key=encode_b64(bundle.device_public_key),
        identity_key=encode_b64(bundle.identity_key),
        signed_pre_key=encode_b64(bundle.signed_pre_key),
        signature=encode_b64(bundle.signature),
        one_time_pre_key=encode_b64(bundle.one_time_pre_key),
    )
