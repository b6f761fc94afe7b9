"""
core/market.py -- Market-hours snapshot selection.

US market sessions are published per trading day, and the day boundary is
midnight in New York regardless of where the server runs. A snapshot is
therefore keyed by the US/Eastern calendar date.

refresh_snapshot() is a pure function of (now, cached snapshot, fetcher):
it reuses the cached snapshot when it belongs to today's Eastern date and
otherwise calls the fetcher once. Persisting the result is the caller's job
(cache/store.py), so there is no module-level cache to go stale.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from core.models import MarketSnapshot

MARKET_TZ = ZoneInfo("America/New_York")


def trading_date(now: Optional[datetime] = None) -> str:
    """Return the US/Eastern calendar date for `now` as YYYY-MM-DD.

    Naive datetimes are taken to be UTC.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(MARKET_TZ).date().isoformat()


def is_current(snapshot: Optional[MarketSnapshot], today: str) -> bool:
    return snapshot is not None and snapshot.date == today


def refresh_snapshot(
    now: datetime,
    cached: Optional[MarketSnapshot],
    fetch: Callable[[], Optional[Any]],
) -> Optional[MarketSnapshot]:
    """Return today's snapshot, fetching only when the cached one is stale.

    Returns the cached object itself when it is current, so callers can use
    an identity check to decide whether to persist. Returns None when a
    fetch was needed and the fetcher returned None.
    """
    today = trading_date(now)
    if is_current(cached, today):
        return cached
    data = fetch()
    if data is None:
        return None
    return MarketSnapshot(date=today, data=data)
