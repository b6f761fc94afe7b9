"""
auth/sessions.py -- Stateless session tokens: issue and validate.

Token wire format:
    base64url(payload JSON) "." base64url(HMAC-SHA256(payload segment, secret))

Nothing is stored server-side. A token ends when the client drops the cookie
or when expiresAt passes. There is no revocation list; removing a credential
from the registry is the only way to cut a live session short.

Validation walks a small state machine:
    NO_TOKEN | VALID | EXPIRED | SIGNATURE_INVALID | MALFORMED_PAYLOAD | UNKNOWN_SUBJECT
inspect_session_token() reports the state for logging. validate_session()
collapses every non-VALID state to None, so callers (and attackers) see a
single "unauthenticated" outcome whatever the cause.

The signature is always recomputed over the payload segment exactly as
received, never over a re-encoded copy of the decoded payload.

Layer rule: no imports from api/, web/, core/, dashboard/, or cache/.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from starlette.requests import cookie_parser

from auth.codec import DecodeError, base64_to_base64url, decode_payload, encode_payload
from auth.models import STATUS_VALID, SessionPayload
from auth.signer import constant_time_equals, sign

logger = logging.getLogger("keydash.auth")

SESSION_COOKIE = "auth_session"
SESSION_DURATION_SECONDS = 3600


class CredentialRegistry(Protocol):
    def is_registered(self, yubikey_id: str) -> bool: ...


class SessionState(str, Enum):
    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRED = "expired"
    SIGNATURE_INVALID = "signature_invalid"
    MALFORMED_PAYLOAD = "malformed_payload"
    UNKNOWN_SUBJECT = "unknown_subject"


@dataclass(frozen=True)
class SessionCheck:
    state: SessionState
    subject_id: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.state is SessionState.VALID


def now_ms() -> int:
    return int(time.time() * 1000)


def _token_signature(segment: str, secret: str) -> str:
    return base64_to_base64url(sign(segment, secret))


def issue_session_token(
    secret: str,
    subject_id: str,
    duration_seconds: int = SESSION_DURATION_SECONDS,
    now: Optional[int] = None,
) -> str:
    """Mint a signed session token for `subject_id`.

    Args:
        secret:           SESSION_SECRET. Must be non-empty.
        subject_id:       Credential ID; stored lower-cased.
        duration_seconds: Token lifetime. Keep it equal to the cookie Max-Age.
        now:              Clock override in epoch milliseconds (tests).
    """
    if not secret:
        raise ValueError("session secret is empty")
    issued = now_ms() if now is None else now
    payload = SessionPayload(
        subject_id=subject_id.lower(),
        expires_at=issued + duration_seconds * 1000,
        status=STATUS_VALID,
    )
    segment = encode_payload(payload)
    return f"{segment}.{_token_signature(segment, secret)}"


def inspect_session_token(
    token: Optional[str],
    secret: str,
    registry: CredentialRegistry,
    now: Optional[int] = None,
) -> SessionCheck:
    """Classify a raw token value. Never raises."""
    if not token:
        return SessionCheck(SessionState.NO_TOKEN)
    if not secret:
        # Fail closed. Config validation logs the missing secret at startup.
        return SessionCheck(SessionState.SIGNATURE_INVALID)

    segment, _, signature = token.partition(".")
    if not segment or not signature:
        return SessionCheck(SessionState.MALFORMED_PAYLOAD)

    if not constant_time_equals(signature, _token_signature(segment, secret)):
        return SessionCheck(SessionState.SIGNATURE_INVALID)

    try:
        payload = decode_payload(segment)
    except DecodeError:
        return SessionCheck(SessionState.MALFORMED_PAYLOAD)

    current = now_ms() if now is None else now
    if current > payload.expires_at:
        return SessionCheck(SessionState.EXPIRED)

    subject_id = payload.subject_id.lower()
    if not registry.is_registered(subject_id):
        return SessionCheck(SessionState.UNKNOWN_SUBJECT)
    return SessionCheck(SessionState.VALID, subject_id)


def session_token_from_header(cookie_header: Optional[str]) -> Optional[str]:
    if not cookie_header:
        return None
    return cookie_parser(cookie_header).get(SESSION_COOKIE) or None


def validate_session(
    cookie_header: Optional[str],
    secret: str,
    registry: CredentialRegistry,
    now: Optional[int] = None,
) -> Optional[str]:
    """Return the authenticated subject ID from a Cookie header, or None.

    Every failure reason returns None. The reason is logged at INFO so
    operators can tell tampering from expiry without exposing the difference.
    """
    check = inspect_session_token(session_token_from_header(cookie_header), secret, registry, now)
    if check.state not in (SessionState.VALID, SessionState.NO_TOKEN):
        logger.info("Session rejected: %s", check.state.value)
    return check.subject_id if check.is_valid else None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int = SESSION_DURATION_SECONDS, secure: bool = True) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age: must match the token's own expiry so both end together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        max_age=max_age,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
