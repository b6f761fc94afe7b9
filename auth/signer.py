"""
auth/signer.py -- HMAC signing and constant-time tag comparison.

Two algorithms are in play:
  HMAC-SHA256 signs session tokens. The key is SESSION_SECRET's UTF-8 bytes.
  HMAC-SHA1 signs Yubico validation requests and responses. SHA-1 is mandated
      by the Yubico protocol; auth/otp.py calls hmac_b64() with hashlib.sha1.

Tags are standard base64 strings. Session tokens convert them to the
URL-safe alphabet (auth/codec.py); the Yubico protocol uses them as-is.

Layer rule: stdlib only.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


def hmac_b64(key: bytes, message: str, digestmod=hashlib.sha256) -> str:
    """Return base64(HMAC(key, UTF-8 message)) using the given digest."""
    digest = hmac.new(key, message.encode("utf-8"), digestmod).digest()
    return base64.b64encode(digest).decode("ascii")


def sign(message: str, secret: str) -> str:
    """HMAC-SHA256 over `message` keyed with the raw UTF-8 bytes of `secret`."""
    return hmac_b64(secret.encode("utf-8"), message, hashlib.sha256)


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two tag strings without leaking where they first differ.

    A length mismatch returns False immediately -- tag length is public.
    Equal-length inputs go through hmac.compare_digest, which XOR-accumulates
    across the whole input instead of stopping at the first difference.
    Inputs are encoded first because compare_digest rejects non-ASCII str,
    and a cookie value is attacker-controlled.
    """
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify(message: str, tag: str, secret: str) -> bool:
    """Return True if `tag` is the HMAC-SHA256 of `message` under `secret`."""
    return constant_time_equals(tag, sign(message, secret))
