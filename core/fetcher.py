"""
fetcher.py -- Upstream market data fetching for the dashboard widgets.

Both endpoints are plain JSON GETs. Every fetcher returns None on failure
and logs the reason; routes turn None into a 502.
"""

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger("keydash.fetcher")

# Module-level session shared across all fetcher calls for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- these are known APIs,
# 3 hops is generous and protects against SSRF via redirect chains.
_session = requests.Session()
_session.max_redirects = 3


def fetch_quotes(url: str, symbols: str, fields: Optional[str] = None) -> Optional[dict[str, Any]]:
    """Fetch raw quotes for a comma-separated symbol list.

    Args:
        url:     Quote API endpoint (Settings.quote_api_url).
        symbols: Comma-separated symbols, passed through unchanged.
        fields:  Optional upstream field selector, passed through unchanged.
    """
    params: dict[str, str] = {"symbols": symbols}
    if fields:
        params["fields"] = fields
    try:
        resp = _session.get(url, params=params, timeout=10)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Quote fetch failed for %s: %s", symbols, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Quote fetch for %s returned %s, expected an object", symbols, type(data).__name__)
        return None
    return data


def fetch_market_hours(url: str) -> Optional[Any]:
    """Fetch today's market sessions (equity, option, bond)."""
    try:
        resp = _session.get(url, timeout=10)
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Market hours fetch failed: %s", e)
        return None
