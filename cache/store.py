"""
cache/store.py -- SQLite-backed persistence for the market-hours snapshot.

Holds at most one row: the snapshot for the current US/Eastern trading date.
Deciding whether the stored snapshot is still current is core/market.py's
job; this class only loads and replaces it.

Usage:
    cache = MarketHoursCache()
    snapshot = cache.latest()            # MarketSnapshot or None
    cache.replace(MarketSnapshot("2026-10-19", data))
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Optional, Union

from core.models import MarketSnapshot

_DEFAULT_DB = Path(__file__).parent / "keydash_cache.db"

_DDL = """
CREATE TABLE IF NOT EXISTS market_hours (
    date        TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    created_at  REAL NOT NULL
);
"""


class MarketHoursCache:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB) -> None:
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def latest(self) -> Optional[MarketSnapshot]:
        """Return the most recently stored snapshot, current or not."""
        row = self._conn.execute("SELECT date, data FROM market_hours ORDER BY date DESC LIMIT 1").fetchone()
        if row is None:
            return None
        date, data = row
        return MarketSnapshot(date=date, data=json.loads(data))

    def replace(self, snapshot: MarketSnapshot) -> None:
        """Store `snapshot` and drop every other date in one transaction."""
        with self._conn:
            self._conn.execute("DELETE FROM market_hours WHERE date != ?", (snapshot.date,))
            self._conn.execute(
                "INSERT OR REPLACE INTO market_hours (date, data, created_at) VALUES (?, ?, ?)",
                (snapshot.date, json.dumps(snapshot.data), time.time()),
            )

    def close(self) -> None:
        self._conn.close()
