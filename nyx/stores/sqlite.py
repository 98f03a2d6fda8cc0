"""SQLite-backed credential store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from nyx.core.errors import CredentialStoreError
from nyx.models.credential import CredentialRecord
from nyx.stores.base import CredentialStore

logger = logging.getLogger(__name__)

_COLUMNS = "identity, state, state_issued_at, token"


class SQLiteCredentialStore(CredentialStore):
    """Credential records in a single table keyed by identity.

    The database runs in WAL mode so readers proceed while a write is in
    flight. Writers are serialized by a process-local lock and each write is
    one transaction. ``bind_state`` and ``set_token`` touch only their own
    columns, so a writer in another process sharing the file never has its
    token or state replaced by a stale copy.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0, check_same_thread=False)
        except sqlite3.Error as exc:
            raise CredentialStoreError(f"Cannot open credential database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise CredentialStoreError(f"Credential database error: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    identity TEXT PRIMARY KEY,
                    state TEXT NOT NULL DEFAULT '',
                    state_issued_at TEXT,
                    token TEXT NOT NULL DEFAULT '',
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS credentials_state_idx
                ON credentials (state) WHERE state != ''
                """
            )

    def upsert(self, record: CredentialRecord) -> None:
        self._require_identity(record.identity)
        issued_at = record.state_issued_at.isoformat() if record.state_issued_at else None
        now_iso = datetime.now(timezone.utc).isoformat()

        with self._write_lock, self._connection() as conn:
            self._detach_state(conn, record.state, record.identity)
            conn.execute(
                """
                INSERT INTO credentials (identity, state, state_issued_at, token, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(identity) DO UPDATE SET
                    state = excluded.state,
                    state_issued_at = excluded.state_issued_at,
                    token = excluded.token,
                    updated_at = excluded.updated_at
                """,
                (record.identity, record.state, issued_at, record.token, now_iso),
            )

    def bind_state(
        self, identity: str, state: str, issued_at: Optional[datetime]
    ) -> CredentialRecord:
        self._require_identity(identity)
        issued_iso = issued_at.isoformat() if issued_at else None
        now_iso = datetime.now(timezone.utc).isoformat()

        with self._write_lock, self._connection() as conn:
            self._detach_state(conn, state, identity)
            conn.execute(
                """
                INSERT INTO credentials (identity, state, state_issued_at, token, updated_at)
                VALUES (?, ?, ?, '', ?)
                ON CONFLICT(identity) DO UPDATE SET
                    state = excluded.state,
                    state_issued_at = excluded.state_issued_at,
                    updated_at = excluded.updated_at
                """,
                (identity, state, issued_iso, now_iso),
            )
            return self._fetch_identity(conn, identity)

    def set_token(self, identity: str, token: str) -> CredentialRecord:
        self._require_identity(identity)
        now_iso = datetime.now(timezone.utc).isoformat()

        with self._write_lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO credentials (identity, state, state_issued_at, token, updated_at)
                VALUES (?, '', NULL, ?, ?)
                ON CONFLICT(identity) DO UPDATE SET
                    token = excluded.token,
                    updated_at = excluded.updated_at
                """,
                (identity, token, now_iso),
            )
            return self._fetch_identity(conn, identity)

    @staticmethod
    def _detach_state(conn: sqlite3.Connection, state: str, identity: str) -> None:
        if not state:
            return
        detached = conn.execute(
            """
            UPDATE credentials SET state = '', state_issued_at = NULL
            WHERE state = ? AND identity != ?
            """,
            (state, identity),
        ).rowcount
        if detached:
            logger.warning("State already bound to another user; detached it")

    @staticmethod
    def _fetch_identity(conn: sqlite3.Connection, identity: str) -> CredentialRecord:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM credentials WHERE identity = ?",
            (identity,),
        ).fetchone()
        return _row_to_record(row)

    def get_by_state(self, state: str) -> Optional[CredentialRecord]:
        if not state:
            return None
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials WHERE state = ?",
                (state,),
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_by_identity(self, identity: str) -> Optional[CredentialRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials WHERE identity = ?",
                (identity,),
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_all(self) -> List[CredentialRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials ORDER BY rowid"
            ).fetchall()
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> CredentialRecord:
    issued_at = row["state_issued_at"]
    return CredentialRecord(
        identity=row["identity"],
        state=row["state"],
        state_issued_at=datetime.fromisoformat(issued_at) if issued_at else None,
        token=row["token"],
    )


__all__ = ["SQLiteCredentialStore"]
