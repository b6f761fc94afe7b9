"""
auth/otp.py -- One-shot verification of a YubiKey OTP against Yubico's service.

Protocol (Yubico Validation Protocol 2.0):
  1. Fresh nonce per call. It is the only thing that stops a captured
     response from being replayed, so it comes from `secrets` and is never
     reused or shared between concurrent logins.
  2. Request parameters id, otp, nonce are canonicalized (sorted by key,
     key=value joined with &) and signed with HMAC-SHA1 keyed by the
     base64-decoded API key. The base64 tag goes out as parameter h.
  3. GET with all four parameters in the query string.
  4. The body is newline-delimited key=value text, not JSON.
  5. Accept only if status=OK, the nonce and otp are echoed unchanged, and
     h over the remaining fields matches under the same key.

Failure taxonomy:
  ServiceUnavailable  -- network error, timeout, non-2xx. Transient; the
                         caller asks the human to retry. No automatic retry.
  False               -- explicit rejection (status, nonce, otp, signature).
                         Terminal for this attempt.
  ConfigurationError  -- client id or API key missing or not valid base64.

The rejection reason is logged, never returned, so callers cannot tell the
user which check failed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import secrets
from collections.abc import Iterable
from typing import Optional

import requests

from auth.errors import ConfigurationError, ServiceUnavailable
from auth.signer import constant_time_equals, hmac_b64

logger = logging.getLogger("keydash.otp")

YUBICO_VERIFY_URL = "https://api.yubico.com/wsapi/2.0/verify"

_NONCE_BYTES = 20  # 40 hex chars, inside the protocol's 16-40 char window


def generate_nonce() -> str:
    return secrets.token_hex(_NONCE_BYTES)


def canonicalize(params: Iterable[tuple[str, str]]) -> str:
    """Sort (key, value) pairs by key and join them as key=value&key=value."""
    return "&".join(f"{key}={value}" for key, value in sorted(params, key=lambda kv: kv[0]))


def sign_params(params: Iterable[tuple[str, str]], secret_key: bytes) -> str:
    """Return the base64 HMAC-SHA1 signature Yubico expects in parameter h."""
    return hmac_b64(secret_key, canonicalize(params), hashlib.sha1)


def parse_response(text: str) -> list[tuple[str, str]]:
    """Parse a key=value-per-line body into ordered pairs.

    Splits on the first '=' only -- h and otp values may contain '='
    padding. Both sides are trimmed and blank lines are skipped.
    """
    pairs: list[tuple[str, str]] = []
    for line in text.strip().splitlines():
        if not line.strip():
            continue
        key, _, value = line.partition("=")
        pairs.append((key.strip(), value.strip()))
    return pairs


def decode_secret_key(secret_key_b64: str) -> bytes:
    """Decode the base64 API key. Raises ConfigurationError if unusable."""
    if not secret_key_b64:
        raise ConfigurationError("YUBICO_SECRET_KEY is not set")
    try:
        return base64.b64decode(secret_key_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("YUBICO_SECRET_KEY is not valid base64") from exc


class YubicoVerifier:
    """Verifies OTPs against the Yubico validation service.

    Usage:
        verifier = YubicoVerifier(client_id="12345", secret_key="c2VjcmV0...")
        if verifier.verify(otp):
            ...

    One verifier is shared by all requests. It holds no per-call state --
    the nonce lives on the stack of verify().
    """

    def __init__(
        self,
        client_id: str,
        secret_key: str,
        url: str = YUBICO_VERIFY_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client_id = client_id
        self.secret_key = secret_key
        self.url = url
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            # Known endpoint; a redirect chain is never expected.
            session.max_redirects = 3
        self._session = session

    def verify(self, otp: str) -> bool:
        if not self.client_id:
            raise ConfigurationError("YUBICO_CLIENT_ID is not set")
        key = decode_secret_key(self.secret_key)

        nonce = generate_nonce()
        params = [("id", self.client_id), ("otp", otp), ("nonce", nonce)]
        params.append(("h", sign_params(params, key)))

        try:
            resp = self._session.get(self.url, params=params, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Yubico validation request failed: %s", exc)
            raise ServiceUnavailable("OTP validation service unavailable") from exc

        fields = dict(parse_response(resp.text))

        status = fields.get("status")
        if status != "OK":
            logger.info("OTP rejected: status=%s", status)
            return False
        if fields.get("nonce") != nonce:
            logger.warning("OTP rejected: nonce mismatch")
            return False
        if fields.get("otp") != otp:
            logger.warning("OTP rejected: otp mismatch")
            return False

        received = fields.pop("h", None)
        if not received:
            logger.warning("OTP rejected: response signature missing")
            return False
        expected = sign_params(fields.items(), key)
        if not constant_time_equals(received, expected):
            logger.warning("OTP rejected: response signature mismatch")
            return False
        return True
