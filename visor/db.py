import sqlite3
from pathlib import Path
from datetime import datetime, timezone

DDL = [
    """
CREATE TABLE IF NOT EXISTS kv_state (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",
]

def get_conn(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None)  # autocommit
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
    return conn

def migrate(conn: sqlite3.Connection):
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)


class StateStore:
    """
    Client-local key/value state that survives restarts.
    Values are plain strings; there is no versioning.
    """
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = get_conn(db_path)
        migrate(self._conn)

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_state WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str):
        now = datetime.now(timezone.utc).isoformat()
        self._conn.execute(
            """
            INSERT INTO kv_state(key, value, updated_at_utc) VALUES(?,?,?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at_utc=excluded.updated_at_utc
            """,
            (key, str(value), now),
        )

    def delete(self, key: str):
        self._conn.execute("DELETE FROM kv_state WHERE key=?", (key,))

    def keys(self) -> list[str]:
        return [row[0] for row in self._conn.execute("SELECT key FROM kv_state ORDER BY key").fetchall()]

    def close(self):
        self._conn.close()
