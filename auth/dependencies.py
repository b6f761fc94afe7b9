"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access gate middleware (api/main.py) validates the auth_session cookie
before any route runs and stores the subject ID on request.state. These
helpers only read that result; they never re-validate the token.

try_get_current_subject() is the soft variant (returns None).
get_current_subject() raises HTTP 401 if no subject is attached. API routes
depend on it so they stay closed even if mounted outside the gate.

Layer rule: no imports from web/, core/, dashboard/, or cache/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request


def try_get_current_subject(request: Request) -> Optional[str]:
    """Return the authenticated credential ID, or None. Never raises."""
    return getattr(request.state, "subject_id", None)


def get_current_subject(request: Request) -> str:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(subject_id: str = Depends(get_current_subject)): ...
    """
    subject_id = try_get_current_subject(request)
    if subject_id is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return subject_id
