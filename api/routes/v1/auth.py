"""
api/routes/v1/auth.py -- OTP login, signup, logout, and profile endpoints.

Routes:
  POST /api/v1/auth         -- form field otp; sets auth_session cookie, 303 /
  POST /api/v1/signup       -- form field otp; registers the key, then as login
  POST /api/v1/auth/logout  -- clears the cookie, 303 /login
  GET  /api/v1/me           -- current credential profile (requires auth)

Login and signup are browser form posts, so every outcome is a redirect.
Failures go to /login or /signup with ?error=<code>, where <code> is an
AuthError.code. The web layer maps codes through a whitelist before anything
reaches a template.

Security:
  POST /auth and POST /signup are rate-limited per client address.
  Cache-Control: no-store on every login/signup response.
  The routes are sync: the Yubico round-trip blocks, so FastAPI runs them in
  its thread pool instead of on the event loop.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import MeResponse
from auth.dependencies import get_current_subject
from auth.errors import AuthError, ConfigurationError, ServiceUnavailable, UnknownCredential
from auth.login import login_with_otp, signup_with_otp
from auth.sessions import clear_session_cookie, set_session_cookie
from auth.store import CredentialStore
from core.config import Settings

logger = logging.getLogger("keydash.api")

# Auth policy:
# - POST /api/v1/auth:         public -- the access gate lets it through only without a session
# - POST /api/v1/signup:       public -- same as /auth
# - POST /api/v1/auth/logout:  requires a session (gate); clearing a cookie is harmless either way
# - GET  /api/v1/me:           requires auth (get_current_subject)
router = APIRouter()


def _redirect_with_error(path: str, code: str) -> RedirectResponse:
    resp = RedirectResponse(f"{path}?error={code}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _log_failure(flow: str, exc: AuthError) -> None:
    if isinstance(exc, ConfigurationError):
        logger.error("%s failed: server configuration error (%s)", flow, exc)
    elif isinstance(exc, ServiceUnavailable):
        logger.warning("%s failed: OTP service unavailable", flow)
    else:
        logger.info("%s failed: %s", flow, exc.code)


def _session_redirect(settings: Settings, token: str) -> RedirectResponse:
    resp = RedirectResponse("/", status_code=303)
    set_session_cookie(resp, token, max_age=settings.session_duration_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth")
@limiter.limit(AUTH_RATE_LIMIT)
def login(request: Request, otp: Optional[str] = Form(None)) -> RedirectResponse:
    """Verify a YubiKey OTP and start a session.

    An unregistered key is sent to /signup with error=not_recognized before
    any call to Yubico. Every other failure returns to /login.
    """
    settings: Settings = request.app.state.settings
    credentials: CredentialStore = request.app.state.credentials
    try:
        token = login_with_otp(
            otp,
            credentials,
            request.app.state.otp_verifier,
            settings.session_secret,
            settings.session_duration_seconds,
        )
    except UnknownCredential as exc:
        _log_failure("Login", exc)
        return _redirect_with_error("/signup", exc.code)
    except AuthError as exc:
        _log_failure("Login", exc)
        return _redirect_with_error("/login", exc.code)
    return _session_redirect(settings, token)


@router.post("/signup")
@limiter.limit(AUTH_RATE_LIMIT)
def signup(request: Request, otp: Optional[str] = Form(None)) -> RedirectResponse:
    """Register a new YubiKey after verifying one of its OTPs, then start a session."""
    settings: Settings = request.app.state.settings
    credentials: CredentialStore = request.app.state.credentials
    try:
        token = signup_with_otp(
            otp,
            credentials,
            request.app.state.otp_verifier,
            settings.session_secret,
            settings.session_duration_seconds,
        )
    except AuthError as exc:
        _log_failure("Signup", exc)
        return _redirect_with_error("/signup", exc.code)
    return _session_redirect(settings, token)


@router.post("/auth/logout")
async def logout() -> RedirectResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    resp = RedirectResponse("/login", status_code=303)
    clear_session_cookie(resp)
    return resp


@router.get("/me", response_model=MeResponse)
def me(request: Request, subject_id: str = Depends(get_current_subject)) -> MeResponse:
    """Return the profile of the credential behind the current session."""
    credentials: CredentialStore = request.app.state.credentials
    credential = credentials.get(subject_id)
    if credential is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return MeResponse(yubikey_id=credential.yubikey_id, is_paying=credential.is_paying)
