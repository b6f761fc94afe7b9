"""
core/quotes.py -- Trim upstream quote payloads to what the widgets use.

Pure functions, no I/O. Upstream payloads are keyed by symbol; each entry
may carry dozens of fields we never display.
"""

from typing import Any, Optional

from core.models import QUOTE_FIELDS, QuoteSnapshot, SymbolQuote


def _optional_number(value: Any) -> Optional[float]:
    """Coerce a numeric field, keeping absence distinct from zero.

    Missing, null, non-numeric and boolean values become None. 0 stays 0.0.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def filter_quote(entry: Any) -> SymbolQuote:
    entry = entry if isinstance(entry, dict) else {}
    raw_quote = entry.get("quote")
    raw_quote = raw_quote if isinstance(raw_quote, dict) else {}
    asset_type = entry.get("assetMainType")
    return SymbolQuote(
        assetMainType=asset_type if isinstance(asset_type, str) else None,
        quote=QuoteSnapshot(**{name: _optional_number(raw_quote.get(name)) for name in QUOTE_FIELDS}),
    )


def filter_quotes(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return {symbol: {"assetMainType": ..., "quote": {...seven fields...}}}."""
    return {symbol: filter_quote(entry).to_dict() for symbol, entry in raw.items()}
