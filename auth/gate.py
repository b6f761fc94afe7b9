"""
auth/gate.py -- Request-time access decision.

decide() is a pure function of the request path and the session result.
api/main.py wraps it in HTTP middleware that runs before any route:

    public asset              -> allow, session never inspected
    auth page, no session     -> allow (render or submit login/signup)
    auth page, session        -> redirect /   (no re-login while logged in)
    other path, no session    -> redirect /login
    other path, session       -> allow, subject ID attached to request.state

Every kind of session failure reaches decide() as subject_id=None, so
expired, tampered, and unknown tokens behave identically.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

PUBLIC_PATHS = frozenset({"/app.js", "/style.css", "/favicon.ico", "/api/v1/health"})
AUTH_PATHS = frozenset({"/login", "/signup", "/api/v1/auth", "/api/v1/signup"})

LOGIN_URL = "/login"
LANDING_URL = "/"


class GateAction(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GateDecision:
    action: GateAction
    location: Optional[str] = None
    subject_id: Optional[str] = None


def is_public(path: str) -> bool:
    return path in PUBLIC_PATHS


def decide(path: str, subject_id: Optional[str]) -> GateDecision:
    if is_public(path):
        return GateDecision(GateAction.ALLOW)
    if path in AUTH_PATHS:
        if subject_id is not None:
            return GateDecision(GateAction.REDIRECT, location=LANDING_URL)
        return GateDecision(GateAction.ALLOW)
    if subject_id is None:
        return GateDecision(GateAction.REDIRECT, location=LOGIN_URL)
    return GateDecision(GateAction.ALLOW, subject_id=subject_id)
