"""
auth/login.py -- OTP login and signup flows.

Both flows take a raw form value and either return a fresh session token or
raise an AuthError subclass whose `code` the route turns into a redirect.

Login validation order (each step runs only if the previous one passed):
    presence -> exact length -> extract/normalize ID -> registry membership
    -> configuration -> remote OTP verification -> session issuance

The registry check runs before the remote call, so an unknown key costs no
round-trip to Yubico and gets a distinct "not recognized" answer that points
at signup. Everything after that point is reported generically.

Signup skips the registry step, verifies the OTP, then inserts the ID. The
insert re-checks for an existing row because another request may have
registered the same key in between.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    ConfigurationError,
    CredentialAlreadyRegistered,
    MalformedInput,
    UnauthorizedCredential,
    UnknownCredential,
)
from auth.otp import YubicoVerifier
from auth.sessions import SESSION_DURATION_SECONDS, issue_session_token
from auth.store import CredentialStore

logger = logging.getLogger("keydash.auth")

# Yubico OTP: 12-char public ID followed by the 32-char encrypted part.
YUBIKEY_ID_LENGTH = 12
YUBIKEY_OTP_LENGTH = 44


def extract_credential_id(otp: Optional[str]) -> str:
    """Validate OTP shape and return its normalized (lower-cased) credential ID."""
    if not otp:
        raise MalformedInput("No OTP provided", code="missing_otp")
    if len(otp) != YUBIKEY_OTP_LENGTH:
        raise MalformedInput("Invalid OTP length", code="invalid_length")
    return otp[:YUBIKEY_ID_LENGTH].lower()


def _require_session_secret(session_secret: str) -> None:
    if not session_secret:
        raise ConfigurationError("SESSION_SECRET is not set")


def login_with_otp(
    otp: Optional[str],
    registry: CredentialStore,
    verifier: YubicoVerifier,
    session_secret: str,
    duration_seconds: int = SESSION_DURATION_SECONDS,
) -> str:
    """Run the login flow and return a signed session token.

    Raises:
        MalformedInput:         missing field or wrong length.
        UnknownCredential:      ID not registered; no remote call was made.
        ConfigurationError:     a required secret is missing.
        ServiceUnavailable:     Yubico unreachable, timed out, or non-2xx.
        UnauthorizedCredential: Yubico rejected the OTP or its answer failed checks.
    """
    yubikey_id = extract_credential_id(otp)

    if not registry.is_registered(yubikey_id):
        raise UnknownCredential("YubiKey not recognized")

    _require_session_secret(session_secret)
    if not verifier.verify(otp):
        raise UnauthorizedCredential("Invalid OTP")

    logger.info("Login succeeded for %s", yubikey_id)
    return issue_session_token(session_secret, yubikey_id, duration_seconds)


def signup_with_otp(
    otp: Optional[str],
    registry: CredentialStore,
    verifier: YubicoVerifier,
    session_secret: str,
    duration_seconds: int = SESSION_DURATION_SECONDS,
) -> str:
    """Register the OTP's credential after verifying it, and return a session token.

    Raises the same errors as login_with_otp() except UnknownCredential, plus
    CredentialAlreadyRegistered when the ID is already in the registry.
    """
    yubikey_id = extract_credential_id(otp)

    _require_session_secret(session_secret)
    if not verifier.verify(otp):
        raise UnauthorizedCredential("Invalid OTP")

    if registry.is_registered(yubikey_id):
        raise CredentialAlreadyRegistered("This YubiKey is already registered")
    try:
        registry.register(yubikey_id)
    except IntegrityError as exc:
        # A concurrent signup for the same key got there first.
        raise CredentialAlreadyRegistered("This YubiKey is already registered") from exc

    logger.info("Registered new credential %s", yubikey_id)
    return issue_session_token(session_secret, yubikey_id, duration_seconds)
