from dataclasses import asdict, dataclass
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# The quote fields the dashboard widgets read. Everything else the upstream
# API returns is dropped before it reaches the browser.
QUOTE_FIELDS = (
    "mark",
    "lastPrice",
    "markChange",
    "netChange",
    "markPercentChange",
    "netPercentChange",
    "futurePercentChange",
)


@dataclass
class QuoteSnapshot:
    # None means "upstream did not send it". 0.0 is a real price or change.
    mark: Optional[float] = None
    lastPrice: Optional[float] = None
    markChange: Optional[float] = None
    netChange: Optional[float] = None
    markPercentChange: Optional[float] = None
    netPercentChange: Optional[float] = None
    futurePercentChange: Optional[float] = None


@dataclass
class SymbolQuote:
    assetMainType: Optional[str]
    quote: QuoteSnapshot

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MarketSnapshot:
    date: str  # US/Eastern calendar date, YYYY-MM-DD
    data: Any
