# certledger/state/sqlite.py
import os
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from . import WorldState, Write
from .iterator import KeyValue


class SQLiteWorldState(WorldState):
    """SQLite persistent world state for the development peer."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("LEDGER_STATE_PATH")
            db_path = env_path if env_path else Path.cwd() / "world-state.db"

        self.db_path = Path(db_path)

        # Ensure the entire parent directory tree exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = self.db_path.resolve()

        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        # Shared between gRPC worker threads and the committer; every access holds _lock.
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS world_state (
                key     TEXT    PRIMARY KEY,
                value   BLOB    NOT NULL
            ) WITHOUT ROWID
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("World state connection is closed")
        return self._conn

    def get_state(self, key: str) -> Optional[bytes]:
        with self._lock:
            row = self.conn.execute("SELECT value FROM world_state WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def put_state(self, key: str, value: bytes) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO world_state (key, value) VALUES (?, ?)",
                (key, sqlite3.Binary(value)),
            )

    def delete_state(self, key: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM world_state WHERE key = ?", (key,))

    def _scan_page(self, start_key: str, end_key: str, after: Optional[str], limit: int) -> List[KeyValue]:
        clauses, params = [], []
        if after is not None:
            clauses.append("key > ?")
            params.append(after)
        elif start_key:
            clauses.append("key >= ?")
            params.append(start_key)
        if end_key:
            clauses.append("key < ?")
            params.append(end_key)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            rows = self.conn.execute(
                f"SELECT key, value FROM world_state {where} ORDER BY key ASC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [KeyValue(k, bytes(v)) for k, v in rows]

    def apply(self, writes: Iterable[Write]) -> None:
        with self._lock:
            conn = self.conn
            conn.execute("BEGIN IMMEDIATE")
            try:
                for w in writes:
                    if w.value is None:
                        conn.execute("DELETE FROM world_state WHERE key = ?", (w.key,))
                    else:
                        conn.execute(
                            "INSERT OR REPLACE INTO world_state (key, value) VALUES (?, ?)",
                            (w.key, sqlite3.Binary(w.value)),
                        )
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM world_state").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
