"""
Per-user partitioning over shared collections.

The record store has no tenant column. Each title/content row instead carries
one ``user:<username>`` entry in its ``scene_tags`` array, next to the free-form
scene labels. Reading a user's partition means scanning the collection and
keeping rows that carry the user's tag.

With no resolved user the scheme degrades to shared mode: fetches return the
whole collection and nothing is tagged.
"""

import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

OWNER_TAG_PREFIX = "user:"


def tag_for(username: str) -> str:
    """Ownership tag for a username."""
    return OWNER_TAG_PREFIX + username


def is_ownership_tag(tag) -> bool:
    return isinstance(tag, str) and tag.startswith(OWNER_TAG_PREFIX)


def as_tag_list(tags) -> list:
    """A scene_tags value as a list: a bare string is one tag, other non-lists are empty."""
    if isinstance(tags, str):
        return [tags] if tags else []
    if isinstance(tags, (list, tuple)):
        return list(tags)
    return []


def owners_in(tags: Optional[Iterable[str]]) -> list[str]:
    """Usernames named by ownership tags, in order of appearance."""
    return [t[len(OWNER_TAG_PREFIX):] for t in as_tag_list(tags) if is_ownership_tag(t)]


def strip_ownership_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Remove every ``user:*`` entry, keeping scene labels in order.

    Duplicate labels are dropped; non-string entries are ignored.
    """
    result: list[str] = []
    for t in as_tag_list(tags):
        if not isinstance(t, str) or is_ownership_tag(t) or t in result:
            continue
        result.append(t)
    return result


def retag_for_current_user(tags: Optional[Iterable[str]], username: str) -> list[str]:
    """Replace any ownership tags with exactly one for ``username``.

    Stripping always precedes adding, so applying this twice gives the same
    result as applying it once.
    """
    return strip_ownership_tags(tags) + [tag_for(username)]


def retag_row(row: dict, username: Optional[str]) -> dict:
    """Copy of a payload row ready for insertion into the user's partition.

    Store-assigned columns (id, created_at) are dropped so the store assigns
    fresh ones. In shared mode ownership tags are stripped without adding one.
    """
    out = {k: v for k, v in row.items() if k not in ("id", "created_at")}
    tags = row.get("scene_tags")
    if username:
        out["scene_tags"] = retag_for_current_user(tags, username)
    else:
        out["scene_tags"] = strip_ownership_tags(tags)
    return out


def owned_by(row: dict, username: str) -> bool:
    tags = row.get("scene_tags")
    return isinstance(tags, list) and tag_for(username) in tags


def fetch_all_for_user(
    store,
    collection: str,
    username: Optional[str],
    *,
    ascending: bool = False,
) -> list[dict]:
    """
    Read every row of a collection that belongs to ``username``.

    Rows are ordered by ``created_at`` (direction from the item_order policy).
    Without a username the full unfiltered collection is returned.
    """
    rows = store.select(collection, order_by="created_at", ascending=ascending)
    if not username:
        return rows
    owned = [r for r in rows if owned_by(r, username)]
    logger.debug(
        "%s: %d of %d rows owned by %s", collection, len(owned), len(rows), username,
    )
    return owned
