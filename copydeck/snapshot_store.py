"""
Snapshot persistence: save, list and fetch snapshot records.

Records live in the ``snapshots`` collection as ``{key, payload, updated_at}``.
An older ``title_snapshots`` collection with the same shape but titles-only
payloads is read as a fallback and never written.

The record store enforces no row-level security, so access is decided here
from the key alone:

- current keys look like ``user_<username>_manual_<epoch-ms>`` and are visible
  only to that user (anonymous sessions use ``manual_<epoch-ms>``)
- legacy keys (``snap_<epoch-ms>`` or ``default``) predate per-user keys and
  are visible to everyone
- user-profile records (``..._profile``) are never snapshots
- anything else is inaccessible
"""

import json
import logging
import re
from typing import Optional

from .errors import NotFoundError, SnapshotPermissionError
from .types import LEGACY_SNAPSHOTS, SNAPSHOTS, Payload, SnapshotMeta, epoch_ms, utc_now

logger = logging.getLogger(__name__)

_PROFILE_KEY_RE = re.compile(r"_profile(?:_|$)")
_LEGACY_KEY_RE = re.compile(r"^(?:snap_\d+|default)$")
_ANONYMOUS_KEY_RE = re.compile(r"^manual_\d+$")


def make_key(username: Optional[str], ms: Optional[int] = None) -> str:
    """Key for a new snapshot record."""
    ms = epoch_ms() if ms is None else ms
    if username:
        return f"user_{username}_manual_{ms}"
    return f"manual_{ms}"


def is_profile_key(key: str) -> bool:
    return bool(_PROFILE_KEY_RE.search(key))


def is_legacy_key(key: str) -> bool:
    return bool(_LEGACY_KEY_RE.match(key))


def key_belongs_to(key: str, username: Optional[str]) -> bool:
    """True if ``key`` is in the current-scheme namespace of ``username``.

    The pattern is anchored at both ends so that one username can never be a
    prefix of another's namespace (``al`` vs ``al_x``).
    """
    if username:
        return re.fullmatch(rf"user_{re.escape(username)}_manual_\d+", key) is not None
    return bool(_ANONYMOUS_KEY_RE.match(key))


def check_access(key: str, username: Optional[str]) -> None:
    """
    Raise SnapshotPermissionError unless ``username`` may read ``key``.

    Runs before any network call.
    """
    if not key:
        raise SnapshotPermissionError(key, username, "empty key")
    # Own namespace first: usernames may contain "_profile"
    if key_belongs_to(key, username):
        return
    if is_profile_key(key):
        raise SnapshotPermissionError(key, username, "user profile record")
    if is_legacy_key(key):
        return
    if key.startswith("user_"):
        raise SnapshotPermissionError(key, username, "belongs to another user")
    raise SnapshotPermissionError(key, username, "not a snapshot key")


def is_accessible(key: str, username: Optional[str]) -> bool:
    try:
        check_access(key, username)
    except SnapshotPermissionError:
        return False
    return True


def _payload_document(row: dict) -> Optional[dict]:
    """The payload column as a dict; some stores return JSON text."""
    doc = row.get("payload")
    if isinstance(doc, str):
        try:
            doc = json.loads(doc)
        except json.JSONDecodeError:
            return None
    return doc if isinstance(doc, dict) else None


def _meta_from_row(row: dict, source: str) -> Optional[SnapshotMeta]:
    doc = _payload_document(row)
    if doc is None:
        return None
    payload = Payload.from_document(doc, provenance=source)
    return SnapshotMeta(
        key=row.get("key") or "",
        label=payload.label,
        title_count=payload.title_count,
        content_count=payload.content_count,
        updated_at=row.get("updated_at") or payload.updated_at,
        source=source,
    )


class SnapshotStore:
    """Reads and writes snapshot records in a record store."""

    def __init__(self, store):
        self._store = store

    def save(self, payload: Payload, username: Optional[str]) -> SnapshotMeta:
        """
        Write a payload as a new snapshot record.

        The write is an upsert by key, so retrying the same key is safe.
        Older snapshots are never rotated or pruned.
        """
        key = make_key(username)
        updated_at = utc_now()
        self._store.upsert(SNAPSHOTS, {
            "key": key,
            "payload": payload.to_document(),
            "updated_at": updated_at,
        }, on_conflict="key")
        meta = SnapshotMeta(
            key=key,
            label=payload.label,
            title_count=payload.title_count,
            content_count=payload.content_count,
            updated_at=updated_at,
            source=SNAPSHOTS,
        )
        logger.info(
            "Saved snapshot %s (%r): %d titles, %d contents",
            key, meta.label, meta.title_count, meta.content_count,
        )
        return meta

    def list_recent(self, limit: int, username: Optional[str]) -> list[SnapshotMeta]:
        """
        Most recent snapshots visible to ``username``, newest first.

        Fetches twice ``limit`` rows to leave room for filtering. Falls back
        to the legacy collection when nothing in ``snapshots`` qualifies.
        """
        if limit < 1:
            return []
        results = self._list_collection(SNAPSHOTS, limit, username)
        if results:
            return results
        legacy = self._list_collection(LEGACY_SNAPSHOTS, limit, username)
        if legacy:
            logger.info("No snapshots for %s; listed %d legacy records", username, len(legacy))
        return legacy

    def _list_collection(self, collection: str, limit: int, username: Optional[str]) -> list[SnapshotMeta]:
        rows = self._store.select(
            collection, order_by="updated_at", ascending=False, limit=limit * 2,
        )
        results: list[SnapshotMeta] = []
        for row in rows:
            key = row.get("key") or ""
            if is_profile_key(key) and not key_belongs_to(key, username):
                continue
            if not is_accessible(key, username):
                continue
            meta = _meta_from_row(row, collection)
            if meta is None:
                continue
            if not meta.label and meta.title_count == 0 and meta.content_count == 0:
                continue
            results.append(meta)
            if len(results) >= limit:
                break
        return results

    def fetch(self, key: str, username: Optional[str]) -> Payload:
        """
        Payload of one snapshot.

        Raises:
            SnapshotPermissionError: If the key is not accessible to the user
            NotFoundError: If neither collection holds a payload for the key
            StoreError: If a store call fails
        """
        check_access(key, username)
        for collection in (SNAPSHOTS, LEGACY_SNAPSHOTS):
            rows = self._store.select(collection, eq={"key": key}, limit=1)
            doc = _payload_document(rows[0]) if rows else None
            if doc is not None:
                logger.debug("Fetched snapshot %s from %s", key, collection)
                return Payload.from_document(doc, provenance=collection)
        raise NotFoundError(key, searched=(SNAPSHOTS, LEGACY_SNAPSHOTS))
