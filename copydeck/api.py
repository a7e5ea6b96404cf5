"""
Core API for the catalog and its snapshots.

- SnapshotService: save_snapshot(), list_snapshots(), load_snapshot()
- Copydeck: opens the stores of a store directory, resolves the session
  user and wires the catalog, local state and snapshot service together
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .backend import create_stores
from .catalog import Catalog
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .local_state import LocalState, read_current_user
from .logging_config import configure_ops_log, remove_ops_log
from .payload import PayloadBuilder, Rows
from .restore import RestoreEngine
from .snapshot_store import SnapshotStore
from .types import Payload, RestoreResult, SnapshotMeta

logger = logging.getLogger(__name__)


class SnapshotService:
    """
    Unified snapshots of one user's working set.

    Args:
        records: Record store
        state: The user's local categories and settings
        ascending: created_at order of captured rows
        strategy: Restore replacement order
        default_limit: Listing size when no limit is given
    """

    def __init__(
        self,
        records,
        state: LocalState,
        *,
        ascending: bool = False,
        strategy: str = "insert_first",
        default_limit: int = 5,
    ):
        self._state = state
        self._builder = PayloadBuilder(records, state, ascending=ascending)
        self._store = SnapshotStore(records)
        self._engine = RestoreEngine(records, state, strategy=strategy)
        self._default_limit = default_limit

    @property
    def username(self) -> Optional[str]:
        return self._state.username

    def build_payload(
        self,
        label: Optional[str],
        *,
        titles: Optional[Rows] = None,
        contents: Optional[Rows] = None,
        allow_empty_label: bool = False,
    ) -> Payload:
        return self._builder.build(
            label, titles=titles, contents=contents, allow_empty_label=allow_empty_label,
        )

    def save_snapshot(
        self,
        label: Optional[str],
        *,
        titles: Optional[Rows] = None,
        contents: Optional[Rows] = None,
        allow_empty_label: bool = False,
    ) -> SnapshotMeta:
        """
        Capture the working set under a new snapshot key.

        Rows are read live from the store unless the caller passes its own
        in-memory titles/contents.

        Raises:
            ValidationError: If the label is empty and not explicitly allowed
            StoreError: If reading or writing fails
        """
        payload = self.build_payload(
            label, titles=titles, contents=contents, allow_empty_label=allow_empty_label,
        )
        return self._store.save(payload, self.username)

    def list_snapshots(self, limit: Optional[int] = None, *, query: Optional[str] = None) -> list[SnapshotMeta]:
        """
        Most recent snapshots of the user, newest first.

        Args:
            limit: Maximum number of results (default from config)
            query: Keep only snapshots whose label contains this text
        """
        limit = self._default_limit if limit is None else limit
        results = self._store.list_recent(limit, self.username)
        if query:
            results = [m for m in results if query in m.label]
        return results

    def latest(self) -> Optional[SnapshotMeta]:
        results = self._store.list_recent(1, self.username)
        return results[0] if results else None

    def fetch_snapshot(self, key: str) -> Payload:
        return self._store.fetch(key, self.username)

    def load_snapshot(self, key: str, scope: str = "both") -> RestoreResult:
        """
        Restore a snapshot over the user's live data and local state.

        Raises:
            SnapshotPermissionError: If the key belongs to someone else
            NotFoundError: If the snapshot does not exist
            ValidationError: If scope is invalid
            StoreError: If a store call fails; retrying is safe
        """
        payload = self.fetch_snapshot(key)
        result = self._engine.restore(payload, scope)
        logger.info(
            "Loaded snapshot %s (%s): %d titles, %d contents",
            key, payload.provenance, result.title_count, result.content_count,
        )
        return result


class Copydeck:
    """
    A store directory opened for one user.

    Args:
        store_path: Store directory (default: COPYDECK_STORE_PATH or ~/.copydeck)
        config: Explicit configuration instead of the directory's TOML file
        user: Act as this user instead of the session user; "" forces
            shared mode
    """

    def __init__(
        self,
        store_path: Optional[Union[str, Path]] = None,
        *,
        config: Optional[StoreConfig] = None,
        user: Optional[str] = None,
    ):
        path = Path(store_path).expanduser() if store_path else get_default_store_path()
        self._config = config if config is not None else load_or_create_config(path)
        bundle = create_stores(self._config)
        self.records = bundle.records
        self.local = bundle.local
        self._ops_handler = configure_ops_log(self._config.path)

        username = read_current_user(self.local) if user is None else (user or None)
        self.state = LocalState(self.local, username)
        self.catalog = Catalog(self.records, self.state, ascending=self._config.ascending)
        self.snapshots = SnapshotService(
            self.records,
            self.state,
            ascending=self._config.ascending,
            strategy=self._config.restore_strategy,
            default_limit=self._config.snapshot_list_limit,
        )

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def username(self) -> Optional[str]:
        return self.state.username

    def overview(self) -> dict:
        """Item counts of the user plus the latest snapshot."""
        counts = self.catalog.counts()
        latest = self.snapshots.latest()
        return {
            "username": self.username,
            "titles": counts["title"],
            "contents": counts["content"],
            "latest_snapshot": latest.to_dict() if latest else None,
        }

    def close(self) -> None:
        if self._ops_handler is not None:
            remove_ops_log(self._ops_handler)
            self._ops_handler = None
        self.records.close()
        self.local.close()

    def __enter__(self) -> "Copydeck":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
