"""Shared Pydantic types for binary fields carried as base64."""
from __future__ import annotations

import base64
import binascii
from typing import Annotated, Any

from pydantic import BeforeValidator


def decode_b64(value: Any) -> bytes:
    """Decode a standard base64 string into bytes for request validation."""
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        raise ValueError("must be a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("must be valid base64") from exc


def encode_b64(value: bytes | None) -> str | None:
    """Encode bytes as standard base64 for API payloads."""
    if value is None:
        return None
    return base64.b64encode(value).decode()


# Request-side binary field: base64 text on the wire, bytes in the model.
Base64Blob = Annotated[bytes, BeforeValidator(decode_b64)]
