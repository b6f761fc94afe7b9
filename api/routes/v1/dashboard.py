"""
api/routes/v1/dashboard.py -- Data endpoints behind the dashboard widgets.

Routes:
  GET  /api/v1/layout        -- the user's saved widget layout ([] if none)
  POST /api/v1/layout        -- replace the layout (raw JSON body, 32 KiB max)
  GET  /api/v1/quote         -- proxied quotes, trimmed to the displayed fields
  GET  /api/v1/market-hours  -- today's market sessions, cached per ET date

All of these are thin I/O wrappers. Upstream failures become 502 in the
standard error envelope (market-hours keeps its {date, data} shape with
data=null so the widget can still render the date).
"""

import json
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import DATA_RATE_LIMIT, limiter
from api.models import MarketHoursResponse, SaveLayoutResponse
from auth.dependencies import get_current_subject
from cache.store import MarketHoursCache
from core.config import Settings
from core.fetcher import fetch_market_hours, fetch_quotes
from core.market import refresh_snapshot, trading_date
from core.quotes import filter_quotes
from dashboard.store import LayoutStore

# Auth policy:
# - every route requires auth -- layouts are per user and the proxies are not public.
# Router-level dependency enforces auth; handlers that need the ID declare it again.
router = APIRouter(dependencies=[Depends(get_current_subject)])

MAX_LAYOUT_BYTES = 32 * 1024


@router.get("/layout")
def get_layout(request: Request, subject_id: str = Depends(get_current_subject)) -> JSONResponse:
    """Return the stored layout exactly as saved, or [] for a new user."""
    layouts: LayoutStore = request.app.state.layouts
    stored = layouts.get_layout(subject_id)
    if stored is None:
        return JSONResponse(content=[])
    try:
        return JSONResponse(content=json.loads(stored))
    except ValueError as exc:
        raise HTTPException(
            status_code=500,
            detail={"code": "layout_corrupt", "message": "Failed to load layout."},
        ) from exc


@router.post("/layout", response_model=SaveLayoutResponse)
async def save_layout(request: Request, subject_id: str = Depends(get_current_subject)) -> SaveLayoutResponse:
    """Store the request body as the user's layout.

    The body is read raw (not through a Pydantic model) because the layout
    schema belongs to the browser code. It only has to be valid JSON.
    """
    body = await request.body()
    if len(body) > MAX_LAYOUT_BYTES:
        raise HTTPException(
            status_code=413,
            detail={"code": "payload_too_large", "message": "Layout exceeds 32 KiB."},
        )
    try:
        text = body.decode("utf-8")
        json.loads(text)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_layout", "message": "Layout must be valid JSON."},
        ) from exc

    layouts: LayoutStore = request.app.state.layouts
    layouts.save_layout(subject_id, text)
    return SaveLayoutResponse()


@router.get("/quote")
@limiter.limit(DATA_RATE_LIMIT)
def get_quote(request: Request, symbols: str = "", fields: str = "") -> dict:
    """Proxy a quote lookup and drop every field the widgets do not read."""
    if not symbols.strip():
        raise HTTPException(
            status_code=400,
            detail={"code": "missing_symbols", "message": "Missing symbols."},
        )
    settings: Settings = request.app.state.settings
    raw = fetch_quotes(settings.quote_api_url, symbols, fields or None)
    if raw is None:
        raise HTTPException(
            status_code=502,
            detail={"code": "upstream_error", "message": "Failed to fetch quote."},
        )
    return filter_quotes(raw)


@router.get("/market-hours", response_model=MarketHoursResponse)
def get_market_hours(request: Request):
    """Return today's market sessions, fetching upstream at most once per ET date."""
    settings: Settings = request.app.state.settings
    cache: MarketHoursCache = request.app.state.market_cache

    now = datetime.now(timezone.utc)
    cached = cache.latest()
    snapshot = refresh_snapshot(now, cached, lambda: fetch_market_hours(settings.market_hours_api_url))
    if snapshot is None:
        return JSONResponse(
            status_code=502,
            content=MarketHoursResponse(date=trading_date(now), data=None, error="Failed to fetch").model_dump(),
        )
    if snapshot is not cached:
        cache.replace(snapshot)
    return MarketHoursResponse(date=snapshot.date, data=snapshot.data)
