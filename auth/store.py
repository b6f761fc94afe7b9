"""
auth/store.py -- SQLAlchemy Core persistence for registered credentials.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_credential is the mapper. Route and session code never touches SQL.

This is the Allowed-Credential Registry the session layer depends on. The
auth core only calls is_registered(); everything else serves signup, the
profile endpoint, and the admin CLI.

Security:
  All queries use bound parameters. No f-strings in SQL.
  IDs are lower-cased on every path in and out, so a token carrying an
  upper-case ID cannot miss (or alias) a registry row.

Layer rule: no imports from api/, web/, core/, dashboard/, or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Credential

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_yubikeys = Table(
    "yubikeys",
    _metadata,
    Column("yubikey_id", String(12), primary_key=True),
    Column("is_paying", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode per connection (PRAGMAs are not inherited)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Credential records.

    Usage:
        store = CredentialStore("sqlite:///keydash.db")
        store.register("cccccccbcjdf")
        store.is_registered("CCCCCCCBCJDF")   # True
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def is_registered(self, yubikey_id: str) -> bool:
        return self.get(yubikey_id) is not None

    def get(self, yubikey_id: str) -> Credential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_yubikeys.select().where(_yubikeys.c.yubikey_id == yubikey_id.lower())).fetchone()
        return _row_to_credential(row) if row is not None else None

    def register(self, yubikey_id: str, is_paying: bool = False) -> None:
        """Insert a credential.

        Raises sqlalchemy.exc.IntegrityError if it already exists. Signup
        catches that as the signal that a concurrent request won the race.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _yubikeys.insert().values(
                    yubikey_id=yubikey_id.lower(),
                    is_paying=1 if is_paying else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def ensure_registered(self, yubikey_ids: list[str]) -> int:
        """Register any of the given IDs not already present. Returns how many were added.

        Idempotent -- safe to call on every startup with ALLOWED_YUBIKEY_ID.
        """
        added = 0
        for yubikey_id in yubikey_ids:
            if not self.is_registered(yubikey_id):
                self.register(yubikey_id)
                added += 1
        return added

    def set_paying(self, yubikey_id: str, is_paying: bool) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _yubikeys.update()
                .where(_yubikeys.c.yubikey_id == yubikey_id.lower())
                .values(is_paying=1 if is_paying else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def remove(self, yubikey_id: str) -> bool:
        """Delete a credential. Returns True if a row was removed.

        Existing sessions for it stop validating on their next request because
        the session layer re-checks the registry every time.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_yubikeys.delete().where(_yubikeys.c.yubikey_id == yubikey_id.lower()))
            conn.commit()
        return result.rowcount > 0

    def list_all(self) -> list[Credential]:
        with self.engine.connect() as conn:
            rows = conn.execute(_yubikeys.select().order_by(_yubikeys.c.yubikey_id)).fetchall()
        return [_row_to_credential(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_yubikeys)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        yubikey_id=row.yubikey_id,
        is_paying=bool(row.is_paying),
        created_at=row.created_at,
    )
