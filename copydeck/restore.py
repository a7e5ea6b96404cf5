"""
Restore engine: make the live collections match a snapshot payload.

For each affected collection the user's partition is replaced by the
payload's rows, re-tagged for the current user. Ownership tags embedded in
the snapshot (from whoever saved it, or absent in legacy payloads) are
discarded.

Two replacement orders are supported, neither atomic:

- ``insert_first`` (default): remember the ids of the user's current rows,
  insert the payload rows, then delete the remembered ids. A failure in
  between leaves duplicates, never an empty partition.
- ``delete_first``: delete the user's rows, then insert. A failure in between
  leaves the partition empty until the restore is retried.

Retrying a restore from the same snapshot is safe with either order: the
delete set is always re-derived from the current state.
"""

import logging
from typing import Optional

from .errors import StoreError, ValidationError
from .local_state import LocalState
from .ownership import fetch_all_for_user, retag_row
from .types import CONTENTS, TITLES, Payload, RestoreResult

logger = logging.getLogger(__name__)

SCOPES = ("titles", "contents", "both")
STRATEGIES = ("insert_first", "delete_first")


class RestoreEngine:
    """
    Restores payloads into the record store and the user's local state.

    Args:
        store: Record store holding the live collections
        state: The user's local categories and settings
        strategy: "insert_first" or "delete_first"
    """

    def __init__(self, store, state: LocalState, *, strategy: str = "insert_first"):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown restore strategy: {strategy!r}")
        self._store = store
        self._state = state
        self._strategy = strategy

    def restore(self, payload: Payload, scope: str = "both") -> RestoreResult:
        """
        Replace the user's live rows with the payload's.

        Legacy payloads carry no contents; their contents collection is left
        untouched whatever the scope. A current payload with an empty
        contents list does empty the user's contents.

        Raises:
            ValidationError: If scope is not titles, contents or both
            StoreError: If a store call fails (the operation stops there)
        """
        if scope not in SCOPES:
            raise ValidationError(f"Restore scope must be one of {SCOPES}, got {scope!r}")

        username = self._state.username
        do_titles = scope in ("titles", "both")
        do_contents = scope in ("contents", "both") and payload.contents is not None
        if scope in ("contents", "both") and payload.contents is None:
            logger.info("Payload %r has no contents; contents left untouched", payload.label)

        logger.info(
            "Restoring %r (scope=%s, strategy=%s) for %s",
            payload.label, scope, self._strategy, username or "shared mode",
        )
        title_count = content_count = 0
        if do_titles:
            title_count = self._replace(TITLES, payload.titles, username)
        if do_contents:
            content_count = self._replace(CONTENTS, payload.contents, username)

        self._restore_local_state(payload, titles=do_titles, contents=do_contents)

        return RestoreResult(
            title_count=title_count,
            content_count=content_count,
            updated_at=payload.updated_at,
            titles_restored=do_titles,
            contents_restored=do_contents,
        )

    def _replace(self, collection: str, rows: list[dict], username: Optional[str]) -> int:
        """Replace the user's partition of ``collection``; returns rows written."""
        new_rows = [retag_row(r, username) for r in rows if isinstance(r, dict)]
        old_ids = [r["id"] for r in fetch_all_for_user(self._store, collection, username)]

        try:
            if self._strategy == "delete_first":
                if username:
                    self._store.delete(collection, old_ids)
                else:
                    # No ownership scoping possible: full-table replace
                    self._store.delete_all(collection)
                self._store.insert(collection, new_rows)
            else:
                self._store.insert(collection, new_rows)
                self._store.delete(collection, old_ids)
        except StoreError:
            logger.error(
                "Restore of %s interrupted (%s); retry the restore from the same snapshot",
                collection, self._strategy,
            )
            raise

        logger.info(
            "Replaced %d %s with %d from snapshot", len(old_ids), collection, len(new_rows),
        )
        return len(new_rows)

    def _restore_local_state(self, payload: Payload, *, titles: bool, contents: bool) -> None:
        """Write categories and settings; empty values never overwrite stored ones."""
        for kind, restored in (("title", titles), ("content", contents)):
            names = payload.categories.get(kind)
            if restored and names:
                self._state.set_categories(kind, names)
        if payload.view_settings:
            self._state.replace_display_settings(payload.view_settings)
