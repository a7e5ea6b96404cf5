"""
Record store using SQLite.

Local stand-in for the remote record service: schemaless rows grouped by
collection, with store-assigned ``id`` and ``created_at``. Rows of keyed
collections (snapshots) also carry a unique ``key`` used by upsert.

This is the default backend and the one the tests run against.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .errors import StoreError

logger = logging.getLogger(__name__)


def _now() -> str:
    """Microsecond UTC timestamp, so insertion order survives sorting."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _sort_key(field: str):
    def key(row: dict):
        value = row.get(field)
        # None sorts last ascending, matching PostgREST's default
        return (value is None, value if value is not None else "", row.get("id") or 0)
    return key


class RecordStore:
    """
    SQLite-backed record store.

    Each row is stored as a JSON document. Store-assigned columns live in
    their own SQL columns and are merged back on read.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                record_key TEXT,
                data_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_collection
            ON records(collection)
        """)

        # Upsert-by-key target; NULL keys are exempt
        self._conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_records_key
            ON records(collection, record_key)
            WHERE record_key IS NOT NULL
        """)

        self._conn.commit()

    def _row_to_dict(self, row: sqlite3.Row) -> dict:
        data = json.loads(row["data_json"])
        data["id"] = row["id"]
        data["created_at"] = row["created_at"]
        return data

    @staticmethod
    def _encode(operation: str, collection: str, row: Any) -> str:
        if not isinstance(row, dict):
            raise StoreError(operation, collection, f"row must be an object, got {type(row).__name__}")
        data = {k: v for k, v in row.items() if k not in ("id", "created_at")}
        try:
            return json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(operation, collection, f"unserializable field: {e}") from e

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def select(
        self,
        collection: str,
        *,
        eq: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Read rows of a collection.

        Args:
            collection: Collection name
            eq: Column equality filters (all must match)
            order_by: Column to sort by; ties broken by id
            ascending: Sort direction
            limit: Maximum number of rows

        Returns:
            List of row dicts including ``id`` and ``created_at``
        """
        try:
            cursor = self._conn.execute(
                "SELECT id, data_json, created_at FROM records WHERE collection = ? ORDER BY id",
                (collection,),
            )
            rows = [self._row_to_dict(r) for r in cursor.fetchall()]
        except (sqlite3.Error, json.JSONDecodeError) as e:
            raise StoreError("select", collection, str(e)) from e

        if eq:
            rows = [r for r in rows if all(r.get(k) == v for k, v in eq.items())]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=not ascending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, collection: str) -> int:
        cursor = self._conn.execute(
            "SELECT COUNT(*) FROM records WHERE collection = ?", (collection,)
        )
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        """
        Bulk-insert rows. Any id/created_at in the input is ignored.

        All rows go in one transaction; a bad row rejects the batch.

        Returns:
            The inserted rows with their assigned id and created_at
        """
        if not rows:
            return []
        encoded = [(self._encode("insert", collection, r), r.get("key")) for r in rows]
        inserted_ids = []
        try:
            with self._conn:
                for data_json, record_key in encoded:
                    cursor = self._conn.execute("""
                        INSERT INTO records (collection, record_key, data_json, created_at)
                        VALUES (?, ?, ?, ?)
                    """, (collection, record_key, data_json, _now()))
                    inserted_ids.append(cursor.lastrowid)
        except sqlite3.Error as e:
            raise StoreError("insert", collection, str(e)) from e
        return self._get_many(collection, inserted_ids)

    def upsert(self, collection: str, row: dict, *, on_conflict: str = "key") -> dict:
        """
        Insert a row, or replace the row with the same ``on_conflict`` value.

        Preserves id and created_at on replace.
        """
        if on_conflict != "key":
            raise StoreError("upsert", collection, f"unsupported conflict column: {on_conflict!r}")
        record_key = row.get("key")
        if not record_key:
            raise StoreError("upsert", collection, "row has no 'key'")
        data_json = self._encode("upsert", collection, row)
        try:
            with self._conn:
                self._conn.execute("""
                    INSERT INTO records (collection, record_key, data_json, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(collection, record_key) WHERE record_key IS NOT NULL
                    DO UPDATE SET data_json = excluded.data_json
                """, (collection, record_key, data_json, _now()))
        except sqlite3.Error as e:
            raise StoreError("upsert", collection, str(e)) from e
        return self.select(collection, eq={"key": record_key})[0]

    def update(self, collection: str, id: Any, values: dict) -> None:
        """Merge ``values`` into an existing row. Unknown ids are a no-op."""
        existing = self._get_many(collection, [id])
        if not existing:
            return
        merged = dict(existing[0])
        merged.update(values)
        data_json = self._encode("update", collection, merged)
        try:
            with self._conn:
                self._conn.execute("""
                    UPDATE records SET data_json = ?, record_key = ?
                    WHERE id = ? AND collection = ?
                """, (data_json, merged.get("key"), id, collection))
        except sqlite3.Error as e:
            raise StoreError("update", collection, str(e)) from e

    def delete(self, collection: str, ids: list) -> int:
        """Delete rows by id. Returns the number of rows removed."""
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        try:
            with self._conn:
                cursor = self._conn.execute(
                    f"DELETE FROM records WHERE collection = ? AND id IN ({placeholders})",
                    (collection, *ids),
                )
        except sqlite3.Error as e:
            raise StoreError("delete", collection, str(e)) from e
        return cursor.rowcount

    def delete_all(self, collection: str) -> int:
        """Delete every row of a collection."""
        try:
            with self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM records WHERE collection = ?", (collection,)
                )
        except sqlite3.Error as e:
            raise StoreError("delete_all", collection, str(e)) from e
        return cursor.rowcount

    def delete_where(self, collection: str, eq: dict[str, Any]) -> int:
        """Delete rows matching every equality filter."""
        if not eq:
            raise StoreError("delete_where", collection, "refusing to delete without a filter")
        ids = [r["id"] for r in self.select(collection, eq=eq)]
        return self.delete(collection, ids)

    def _get_many(self, collection: str, ids: list) -> list[dict]:
        if not ids:
            return []
        placeholders = ",".join("?" * len(ids))
        cursor = self._conn.execute(
            f"SELECT id, data_json, created_at FROM records "
            f"WHERE collection = ? AND id IN ({placeholders}) ORDER BY id",
            (collection, *ids),
        )
        return [self._row_to_dict(r) for r in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
