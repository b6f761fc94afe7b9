"""
auth/errors.py -- Exception taxonomy for the login and signup flows.

Every exception carries a stable `code`. Route handlers put the code (never
the message or any internal detail) into the ?error= redirect, and the web
layer maps it through a whitelist before rendering.

Session validation never raises any of these -- all of its failures collapse
to "unauthenticated" (see auth/sessions.py).
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for user-facing authentication failures."""

    code = "auth_error"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code


class MalformedInput(AuthError):
    """Missing OTP field or wrong OTP length. User-correctable."""

    code = "malformed_input"


class UnauthorizedCredential(AuthError):
    """Well-formed OTP that did not verify.

    Deliberately generic: status, nonce, otp, and signature mismatches all map
    to this one code so responses do not reveal which check failed.
    """

    code = "invalid_otp"


class UnknownCredential(UnauthorizedCredential):
    """Credential ID is not in the registry. Points the user at signup."""

    code = "not_recognized"


class CredentialAlreadyRegistered(AuthError):
    code = "already_registered"


class ServiceUnavailable(AuthError):
    """The OTP validation service could not be reached or answered non-2xx.

    Transient -- the user may retry. Never reported as an invalid OTP.
    """

    code = "service_unavailable"


class ConfigurationError(AuthError):
    """A required secret is missing or unusable. Not retryable by the user."""

    code = "server_config"
