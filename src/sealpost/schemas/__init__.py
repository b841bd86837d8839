"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .device import DeviceList, DeviceRegister, DeviceRegistered, DeviceResponse, DeviceSummary
from .envelope import (
    AckResult,
    CleanupResult,
    EnvelopeAck,
    EnvelopeResponse,
    EnvelopeSend,
    EnvelopeSent,
    Inbox,
)
from .key_bundle import (
    KeyBundlePublish,
    KeyBundlePublished,
    KeyBundleResponse,
    KeyBundleSummaryResponse,
    PreKeyCount,
    UserKeyBundles,
)

__all__ = [
    "DeviceList", "DeviceRegister", "DeviceRegistered", "DeviceResponse", "DeviceSummary",
    "AckResult", "CleanupResult", "EnvelopeAck", "EnvelopeResponse", "EnvelopeSend", "EnvelopeSent", "Inbox",
    "KeyBundlePublish", "KeyBundlePublished", "KeyBundleResponse", "KeyBundleSummaryResponse",
    "PreKeyCount", "UserKeyBundles",
]
