"""
auth/codec.py -- URL-safe encoding of session payloads.

A payload segment is base64url(compact JSON) with the `=` padding stripped,
so it survives a cookie value and a URL without quoting. The codec only
shapes bytes: it never checks expiry, signatures, or the registry. That is
auth/sessions.py's job.

decode_payload() raises DecodeError (a ValueError) for every malformed input
-- bad base64, bad UTF-8, bad JSON, wrong shape, missing fields. No other
exception type escapes it.
"""

from __future__ import annotations

import base64
import binascii
import json

from auth.models import SessionPayload


class DecodeError(ValueError):
    """A payload segment could not be turned back into a SessionPayload."""


def base64_to_base64url(value: str) -> str:
    return value.replace("+", "-").replace("/", "_").rstrip("=")


def base64url_to_base64(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return padded.replace("-", "+").replace("_", "/")


def b64url_encode(raw: bytes) -> str:
    return base64_to_base64url(base64.b64encode(raw).decode("ascii"))


def b64url_decode(value: str) -> bytes:
    """Decode unpadded base64url. Raises DecodeError on any invalid input."""
    try:
        return base64.b64decode(base64url_to_base64(value), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("invalid base64url") from exc


def encode_payload(payload: SessionPayload) -> str:
    data = json.dumps(payload.to_dict(), separators=(",", ":"))
    return b64url_encode(data.encode("utf-8"))


def decode_payload(segment: str) -> SessionPayload:
    raw = b64url_decode(segment)
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError("invalid JSON") from exc
    if not isinstance(data, dict):
        raise DecodeError("payload is not an object")

    subject_id = data.get("subjectId")
    expires_at = data.get("expiresAt")
    status = data.get("status")
    if not isinstance(subject_id, str) or not subject_id:
        raise DecodeError("missing subjectId")
    # bool is an int subclass; true/false is not a timestamp
    if not isinstance(expires_at, int) or isinstance(expires_at, bool):
        raise DecodeError("missing expiresAt")
    if not isinstance(status, str):
        raise DecodeError("missing status")
    return SessionPayload(subject_id=subject_id, expires_at=expires_at, status=status)
