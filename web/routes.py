"""
web/routes.py -- Jinja2 template routes for the KeyDash web UI.

These routes serve server-rendered HTML and the three public static assets.
They share app.state with the API routes but return HTML instead of JSON.

The access gate (api/main.py) has already decided who may reach each page:
/login and /signup only without a session, everything else only with one.
The handlers here do not re-check.

Routes:
  GET /            -- dashboard shell (widgets are rendered by app.js)
  GET /login       -- OTP login form
  GET /signup      -- OTP signup form
  GET /app.js      -- public asset
  GET /style.css   -- public asset
  GET /favicon.ico -- public asset (no icon shipped; 204)
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import try_get_current_subject

logger = logging.getLogger("keydash.web")

_STATIC_DIR = Path(__file__).parent / "static"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# Whitelist mapping for ?error= query params on /login and /signup.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "missing_otp": "No OTP provided.",
    "invalid_length": "Invalid OTP length. Touch your YubiKey once to fill the field.",
    "invalid_otp": "Invalid OTP.",
    "not_recognized": "YubiKey not recognized. Please register it here.",
    "already_registered": "This YubiKey is already registered. Please log in.",
    "service_unavailable": "Verification service unavailable. Try again.",
    "server_config": "Server configuration error.",
}


def _error_message(request: Request) -> Optional[str]:
    return _ERROR_MESSAGES.get(request.query_params.get("error", ""))


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {"yubikey_id": try_get_current_subject(request)},
    )


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the OTP login form."""
    return templates.TemplateResponse(request, "login.html", {"error_msg": _error_message(request)})


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    """Render the OTP signup form."""
    return templates.TemplateResponse(request, "signup.html", {"error_msg": _error_message(request)})


# ---------------------------------------------------------------------------
# Public assets (auth.gate.PUBLIC_PATHS)
# ---------------------------------------------------------------------------


@router.get("/app.js", include_in_schema=False)
def app_js() -> FileResponse:
    return FileResponse(_STATIC_DIR / "app.js", media_type="text/javascript")


@router.get("/style.css", include_in_schema=False)
def style_css() -> FileResponse:
    return FileResponse(_STATIC_DIR / "style.css", media_type="text/css")


@router.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)
