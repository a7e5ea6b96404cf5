"""
Protocol definitions for copydeck's storage collaborators.

- RecordStoreProtocol: the collection-oriented record service holding titles,
  contents and snapshots (SQLite locally, Supabase REST remotely)
- LocalStoreProtocol: the per-user key/value configuration store holding
  category lists, display settings and the session identity
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class RecordStoreProtocol(Protocol):
    """
    Collection CRUD with filter/sort/limit and upsert-by-key.

    Implemented by:
    - RecordStore (local SQLite)
    - RemoteRecordStore (HTTP client to a Supabase/PostgREST endpoint)

    Every method raises StoreError when the underlying call fails.
    """

    def select(
        self,
        collection: str,
        *,
        eq: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]: ...

    def insert(self, collection: str, rows: list[dict]) -> list[dict]: ...

    def upsert(self, collection: str, row: dict, *, on_conflict: str = "key") -> dict: ...

    def update(self, collection: str, id: Any, values: dict) -> None: ...

    def delete(self, collection: str, ids: list) -> int: ...

    def delete_all(self, collection: str) -> int: ...

    def delete_where(self, collection: str, eq: dict[str, Any]) -> int: ...

    def close(self) -> None: ...


@runtime_checkable
class LocalStoreProtocol(Protocol):
    """String key/value store with localStorage semantics."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def close(self) -> None: ...
