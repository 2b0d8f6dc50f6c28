"""
SQLite-backed persistent cache store for larger capacities.
"""
import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Optional, Union

from ..records import dumps_record, loads_record
from ..types import CacheEntry, CacheStore

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "cache_store"
DEFAULT_PREFIX = "http_cache_"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLiteCacheStore(CacheStore):
    """
    Persistent store bounded by item count.

    Rows keep the serialized record plus its expiry and creation time in
    indexed columns, so expired rows are swept in one statement and the
    oldest row is found without a scan.

    Args:
        path: Database file, or ":memory:"
        table: Table name
        max_items: Maximum number of rows kept. Default: 1000
        prefix: Key prefix for rows owned by this store
    """

    def __init__(
        self,
        path: Union[str, Path] = ":memory:",
        table: str = DEFAULT_TABLE,
        max_items: int = 1000,
        prefix: str = DEFAULT_PREFIX,
    ) -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        if max_items < 1:
            raise ValueError("max_items must be at least 1")

        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._table = table
        self._max_items = max_items
        self._prefix = prefix
        self._conn: Optional[sqlite3.Connection] = None
        self.evictions = 0
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        conn = self._get_conn()
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                key TEXT PRIMARY KEY,
                record TEXT NOT NULL,
                expiry INTEGER NOT NULL,
                created_at INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self._table}_expiry ON {self._table}(expiry)"
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self._table}_created_at "
            f"ON {self._table}(created_at)"
        )
        conn.commit()

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _like_prefix(self) -> str:
        escaped = self._prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{escaped}%"

    def cleanup_expired(self) -> int:
        """Delete every expired row via the expiry index."""
        conn = self._get_conn()
        cursor = conn.execute(
            f"DELETE FROM {self._table} WHERE expiry < ? AND key LIKE ? ESCAPE '\\'",
            (int(time.time() * 1000), self._like_prefix()),
        )
        conn.commit()
        return cursor.rowcount

    def _evict_if_needed(self, incoming_key: str) -> None:
        conn = self._get_conn()
        row = conn.execute(
            f"SELECT COUNT(*) AS count FROM {self._table} "
            f"WHERE key LIKE ? ESCAPE '\\' AND key != ?",
            (self._like_prefix(), incoming_key),
        ).fetchone()
        if row["count"] < self._max_items:
            return

        self.cleanup_expired()

        row = conn.execute(
            f"SELECT COUNT(*) AS count FROM {self._table} "
            f"WHERE key LIKE ? ESCAPE '\\' AND key != ?",
            (self._like_prefix(), incoming_key),
        ).fetchone()
        overflow = row["count"] - self._max_items + 1
        if overflow <= 0:
            return

        cursor = conn.execute(
            f"""
            DELETE FROM {self._table} WHERE key IN (
                SELECT key FROM {self._table}
                WHERE key LIKE ? ESCAPE '\\' AND key != ?
                ORDER BY created_at ASC LIMIT ?
            )
            """,
            (self._like_prefix(), incoming_key, overflow),
        )
        conn.commit()
        self.evictions += cursor.rowcount
        logger.debug(f"SQLiteCacheStore._evict_if_needed: Evicted {cursor.rowcount} oldest rows")

    async def get(self, key: str) -> Optional[CacheEntry]:
        conn = self._get_conn()
        full_key = self._full_key(key)
        row = conn.execute(
            f"SELECT record FROM {self._table} WHERE key = ?", (full_key,)
        ).fetchone()
        if row is None:
            return None

        try:
            entry = loads_record(row["record"])
        except ValueError:
            logger.warning(f"SQLiteCacheStore.get: Dropping unreadable record {full_key}")
            await self.delete(key)
            return None

        if entry.is_expired():
            await self.delete(key)
            return None

        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        full_key = self._full_key(key)
        serialized = dumps_record(entry)
        self._evict_if_needed(full_key)

        conn = self._get_conn()
        conn.execute(
            f"INSERT OR REPLACE INTO {self._table} (key, record, expiry, created_at) "
            f"VALUES (?, ?, ?, ?)",
            (
                full_key,
                serialized,
                int(entry.expiry * 1000),
                int(entry.created_at * 1000),
            ),
        )
        conn.commit()

    async def delete(self, key: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute(
            f"DELETE FROM {self._table} WHERE key = ?", (self._full_key(key),)
        )
        conn.commit()
        return cursor.rowcount > 0

    async def clear(self) -> None:
        conn = self._get_conn()
        conn.execute(
            f"DELETE FROM {self._table} WHERE key LIKE ? ESCAPE '\\'", (self._like_prefix(),)
        )
        conn.commit()

    async def keys(self) -> list[str]:
        conn = self._get_conn()
        rows = conn.execute(
            f"SELECT key FROM {self._table} WHERE key LIKE ? ESCAPE '\\' ORDER BY created_at",
            (self._like_prefix(),),
        ).fetchall()
        prefix_length = len(self._prefix)
        return [row["key"][prefix_length:] for row in rows]

    async def entries(self) -> list[tuple[str, CacheEntry]]:
        self.cleanup_expired()
        conn = self._get_conn()
        rows = conn.execute(
            f"SELECT key, record FROM {self._table} WHERE key LIKE ? ESCAPE '\\'",
            (self._like_prefix(),),
        ).fetchall()
        prefix_length = len(self._prefix)
        live = []
        for row in rows:
            try:
                live.append((row["key"][prefix_length:], loads_record(row["record"])))
            except ValueError:
                continue
        return live

    async def size(self) -> int:
        conn = self._get_conn()
        row = conn.execute(
            f"SELECT COUNT(*) AS count FROM {self._table} WHERE key LIKE ? ESCAPE '\\'",
            (self._like_prefix(),),
        ).fetchone()
        return row["count"]

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
