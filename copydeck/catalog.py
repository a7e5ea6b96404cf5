"""
Catalog operations on a user's titles and contents.

Everything here works on the user's partition of the shared collections
(see ownership). New rows are tagged for the user; in shared mode (no
session) rows are untagged and operations see the whole collection.
"""

import csv
import io
import json
import logging
import re
from typing import Any, Optional

from .errors import ValidationError
from .local_state import LocalState
from .ownership import fetch_all_for_user
from .types import ALL_CATEGORY, COLLECTIONS, Item

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ("text", "main_category", "content_type", "scene_tags", "usage_count", "created_at")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def collection_for(kind: str) -> str:
    try:
        return COLLECTIONS[kind]
    except KeyError:
        raise ValidationError(f"Unknown item kind: {kind!r} (expected one of {tuple(COLLECTIONS)})") from None


class Catalog:
    """
    Titles and contents of one user.

    Args:
        store: Record store
        state: The user's local categories and settings
        ascending: created_at order for listings
    """

    def __init__(self, store, state: LocalState, *, ascending: bool = False):
        self._store = store
        self._state = state
        self._ascending = ascending

    @property
    def username(self) -> Optional[str]:
        return self._state.username

    def rows(self, kind: str) -> list[dict]:
        return fetch_all_for_user(
            self._store, collection_for(kind), self.username, ascending=self._ascending,
        )

    def list_items(
        self,
        kind: str,
        *,
        category: Optional[str] = None,
        scene: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Item]:
        """
        The user's items, filtered like the catalog view.

        Args:
            category: main_category to match; the sentinel matches everything
            scene: scene label the item must carry
            search: case-insensitive substring of the text
        """
        items = [Item.from_row(r) for r in self.rows(kind)]
        if category and category != ALL_CATEGORY:
            items = [i for i in items if i.main_category == category]
        if scene:
            items = [i for i in items if scene in i.tags]
        if search:
            q = search.lower()
            items = [i for i in items if q in i.text.lower()]
        return items

    def add_item(
        self,
        kind: str,
        text: str,
        *,
        main_category: Optional[str] = None,
        content_type: Optional[str] = None,
        scene_tags: Optional[list[str]] = None,
    ) -> Item:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Item text must not be empty")
        item = Item(
            text=text,
            main_category=main_category or None,
            content_type=content_type or None,
            tags=[t.strip() for t in scene_tags or [] if t and t.strip()],
            owner=self.username,
        )
        rows = self._store.insert(collection_for(kind), [item.to_row(include_server_fields=False)])
        return Item.from_row(rows[0])

    def bulk_import(self, kind: str, lines: list[str], *, main_category: Optional[str] = None) -> list[Item]:
        """One item per non-empty line, inserted in a single batch."""
        texts = [line.strip() for line in lines if line and line.strip()]
        if not texts:
            raise ValidationError("Nothing to import")
        rows = [
            Item(text=t, main_category=main_category, owner=self.username).to_row(include_server_fields=False)
            for t in texts
        ]
        inserted = self._store.insert(collection_for(kind), rows)
        logger.info("Imported %d %s", len(inserted), collection_for(kind))
        return [Item.from_row(r) for r in inserted]

    def _owned_row(self, kind: str, item_id: Any) -> dict:
        for row in self.rows(kind):
            if str(row.get("id")) == str(item_id):
                return row
        raise ValidationError(f"No {kind} with id {item_id!r}")

    def record_copy(self, kind: str, item_id: Any) -> Item:
        """Count one clipboard copy of an item."""
        row = self._owned_row(kind, item_id)
        count = int(row.get("usage_count") or 0) + 1
        self._store.update(collection_for(kind), row["id"], {"usage_count": count})
        row["usage_count"] = count
        return Item.from_row(row)

    def delete_item(self, kind: str, item_id: Any) -> None:
        row = self._owned_row(kind, item_id)
        self._store.delete(collection_for(kind), [row["id"]])

    def dedup(self, kind: str) -> int:
        """Delete items whose normalized text repeats, keeping the oldest."""
        seen: set[str] = set()
        duplicates: list[Any] = []
        oldest_first = fetch_all_for_user(
            self._store, collection_for(kind), self.username, ascending=True,
        )
        for row in oldest_first:
            key = normalize_text(row.get("text")).lower()
            if not key:
                continue
            if key in seen:
                duplicates.append(row["id"])
            else:
                seen.add(key)
        removed = self._store.delete(collection_for(kind), duplicates)
        logger.info("Removed %d duplicate %s", removed, collection_for(kind))
        return removed

    def normalize_texts(self, kind: str) -> int:
        """Collapse whitespace in item texts; returns the number changed."""
        changed = 0
        for row in self.rows(kind):
            text = normalize_text(row.get("text"))
            if text != (row.get("text") or ""):
                self._store.update(collection_for(kind), row["id"], {"text": text})
                changed += 1
        return changed

    def rename_category(self, kind: str, old: str, new: str) -> list[str]:
        """Rename a category and move the user's items along with it."""
        names = self._state.rename_category(kind, old, new)
        new = new.strip()
        for row in self.rows(kind):
            if row.get("main_category") == old:
                self._store.update(collection_for(kind), row["id"], {"main_category": new})
        return names

    def clear(self, kind: str) -> int:
        """Delete the user's items (every item in shared mode)."""
        collection = collection_for(kind)
        if not self.username:
            return self._store.delete_all(collection)
        ids = [r["id"] for r in self.rows(kind)]
        return self._store.delete(collection, ids)

    def export_rows(self, kind: str, fmt: str = "json") -> str:
        """Serialize the user's items as CSV (with BOM) or JSON."""
        rows = self.rows(kind)
        if fmt == "json":
            return json.dumps(rows, ensure_ascii=False, indent=2)
        if fmt != "csv":
            raise ValidationError(f"Unknown export format: {fmt!r}")
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for r in rows:
            tags = r.get("scene_tags")
            writer.writerow([
                r.get("text") or "",
                r.get("main_category") or "",
                r.get("content_type") or "",
                "|".join(tags) if isinstance(tags, list) else "",
                r.get("usage_count") or 0,
                r.get("created_at") or "",
            ])
        return "\ufeff" + buf.getvalue()

    def counts(self) -> dict[str, int]:
        return {kind: len(self.rows(kind)) for kind in COLLECTIONS}
