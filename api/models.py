"""
API request and response models for KeyDash REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
core/models.py, which own the internal domain representation.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error body: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    yubikey_id: str
    is_paying: bool


class SaveLayoutResponse(BaseModel):
    success: bool = True


class MarketHoursResponse(BaseModel):
    date: str
    data: Optional[Any] = None
    error: Optional[str] = None
