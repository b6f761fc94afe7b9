"""
dashboard/store.py -- SQLAlchemy Core persistence for per-user widget layouts.

One row per credential ID. The layout is stored as the JSON text the browser
sent; the route validates that it parses before calling save_layout(), so
the store never has to.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = LayoutStore("sqlite:///keydash.db")
    store.save_layout("cccccccbcjdf", '[{"type": "quote", "symbol": "SPY"}]')
    store.get_layout("cccccccbcjdf")
    store.close()
"""

import time
from typing import Optional

from sqlalchemy import BigInteger, Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

_metadata = MetaData()

_user_layouts = Table(
    "user_layouts",
    _metadata,
    Column("user_id", String(12), primary_key=True),
    Column("layout", Text, nullable=False),
    Column("updated_at", BigInteger, nullable=False),  # epoch milliseconds
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class LayoutStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def get_layout(self, user_id: str) -> Optional[str]:
        """Return the stored layout JSON text, or None if the user never saved one."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _user_layouts.select().where(_user_layouts.c.user_id == user_id)
            ).fetchone()
        return row.layout if row is not None else None

    def save_layout(self, user_id: str, layout_json: str) -> None:
        """Insert or overwrite the user's layout.

        Update-then-insert keeps this portable across SQLite and PostgreSQL.
        """
        values = {"layout": layout_json, "updated_at": int(time.time() * 1000)}
        with self.engine.connect() as conn:
            result = conn.execute(
                _user_layouts.update().where(_user_layouts.c.user_id == user_id).values(**values)
            )
            if result.rowcount == 0:
                conn.execute(_user_layouts.insert().values(user_id=user_id, **values))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()
