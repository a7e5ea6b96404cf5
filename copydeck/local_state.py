"""
Per-user local configuration: category lists, display settings, session.

LocalStore is a string key/value store with browser localStorage semantics,
kept in SQLite inside the store directory. LocalState layers the per-user
keys on top of it:

    title_categories_v1_<user>     JSON array of category names
    content_categories_v1_<user>   JSON array of category names
    display_settings_v1_<user>     JSON settings object
    current_user_v1                JSON {"username": ...} (session identity)

Without a session the keys are scoped to the username ``default``.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from .errors import ValidationError
from .types import ALL_CATEGORY

logger = logging.getLogger(__name__)

CURRENT_USER_KEY = "current_user_v1"
ANONYMOUS_SCOPE = "default"

KINDS = ("title", "content")

DEFAULT_CATEGORIES = {
    "title": [ALL_CATEGORY, "亲子", "情侣", "闺蜜", "单人", "家庭", "街拍", "烟花", "夜景"],
    "content": [ALL_CATEGORY, "亲子", "情侣", "闺蜜", "单人", "烟花", "夜景"],
}

# Shared by both kinds after an explicit reset
RESET_CATEGORIES = [ALL_CATEGORY, "亲子", "情侣", "闺蜜", "单人", "烟花", "夜景"]

DEFAULT_DISPLAY_SETTINGS: dict[str, Any] = {
    "brandColor": "#1990ff",
    "brandHover": "#1477dd",
    "ghostColor": "#eef2ff",
    "ghostHover": "#e2e8ff",
    "stripeColor": "#E2F0FF",
    "hoverColor": "#eef2ff",
    "scenes": ["港迪城堡", "烟花", "夜景", "香港街拍"],
    "titleText": "标题与文案管理系统",
    "titleColor": "#1990ff",
}


class LocalStore:
    """SQLite-backed string key/value store."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS local_items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        cursor = self._conn.execute("SELECT value FROM local_items WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO local_items (key, value) VALUES (?, ?)",
                (key, value),
            )

    def remove_item(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM local_items WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        cursor = self._conn.execute("SELECT key FROM local_items ORDER BY key")
        return [r[0] for r in cursor.fetchall()]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


# -----------------------------------------------------------------------------
# Session identity (written by the login flow)
# -----------------------------------------------------------------------------

def read_current_user(local) -> Optional[str]:
    """Username of the active session, or None if absent or unreadable."""
    raw = local.get_item(CURRENT_USER_KEY)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    username = data.get("username") if isinstance(data, dict) else None
    return username if isinstance(username, str) and username else None


def write_current_user(local, username: str) -> None:
    username = username.strip()
    if not username:
        raise ValidationError("Username must not be empty")
    local.set_item(CURRENT_USER_KEY, json.dumps({"username": username}, ensure_ascii=False))


def clear_current_user(local) -> None:
    local.remove_item(CURRENT_USER_KEY)


# -----------------------------------------------------------------------------
# Categories and display settings
# -----------------------------------------------------------------------------

def normalize_categories(names) -> list[str]:
    """Sentinel first, then the other names in order, trimmed and deduplicated."""
    result = [ALL_CATEGORY]
    for name in names or []:
        if not isinstance(name, str):
            continue
        name = name.strip()
        if name and name not in result:
            result.append(name)
    return result


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValidationError(f"Unknown item kind: {kind!r} (expected one of {KINDS})")


class LocalState:
    """
    Category lists and display settings of one user.

    Args:
        local: The key/value store
        username: Owner of the keys; None uses the anonymous scope
    """

    def __init__(self, local, username: Optional[str]):
        self._local = local
        self._username = username
        self._scope = username or ANONYMOUS_SCOPE

    @property
    def username(self) -> Optional[str]:
        return self._username

    def category_key(self, kind: str) -> str:
        _check_kind(kind)
        return f"{kind}_categories_v1_{self._scope}"

    @property
    def settings_key(self) -> str:
        return f"display_settings_v1_{self._scope}"

    def _read_json(self, key: str) -> Any:
        raw = self._local.get_item(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable local value %s", key)
            return None

    # -- categories --

    def categories(self, kind: str) -> list[str]:
        """Stored categories, or the defaults when none are stored."""
        stored = self._read_json(self.category_key(kind))
        if not isinstance(stored, list) or not stored:
            return list(DEFAULT_CATEGORIES[kind])
        return normalize_categories(stored)

    def set_categories(self, kind: str, names: list[str]) -> list[str]:
        normalized = normalize_categories(names)
        self._local.set_item(self.category_key(kind), json.dumps(normalized, ensure_ascii=False))
        return normalized

    def add_category(self, kind: str, name: str) -> list[str]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name must not be empty")
        if name == ALL_CATEGORY:
            raise ValidationError(f"{ALL_CATEGORY!r} cannot be used as a category name")
        current = self.categories(kind)
        if name in current:
            raise ValidationError(f"Category already exists: {name!r}")
        return self.set_categories(kind, current + [name])

    def rename_category(self, kind: str, old: str, new: str) -> list[str]:
        new = (new or "").strip()
        if old == ALL_CATEGORY:
            raise ValidationError(f"{ALL_CATEGORY!r} cannot be renamed")
        if new == ALL_CATEGORY:
            raise ValidationError(f"{ALL_CATEGORY!r} cannot be used as a category name")
        if not new:
            raise ValidationError("Category name must not be empty")
        current = self.categories(kind)
        if old not in current:
            raise ValidationError(f"No such category: {old!r}")
        if new != old and new in current:
            raise ValidationError(f"Category already exists: {new!r}")
        return self.set_categories(kind, [new if c == old else c for c in current])

    def delete_category(self, kind: str, name: str) -> list[str]:
        """Remove a category. Items keep their main_category value."""
        if name == ALL_CATEGORY:
            raise ValidationError(f"{ALL_CATEGORY!r} cannot be deleted")
        current = self.categories(kind)
        if name not in current:
            raise ValidationError(f"No such category: {name!r}")
        return self.set_categories(kind, [c for c in current if c != name])

    def copy_categories(self, source: str, target: str) -> list[str]:
        return self.set_categories(target, self.categories(source))

    def reset_categories(self) -> None:
        for kind in KINDS:
            self.set_categories(kind, RESET_CATEGORIES)

    # -- display settings --

    def display_settings(self) -> dict[str, Any]:
        """Stored settings over the defaults; an empty scene list uses the default."""
        stored = self._read_json(self.settings_key)
        settings = dict(DEFAULT_DISPLAY_SETTINGS)
        if isinstance(stored, dict):
            settings.update(stored)
        scenes = settings.get("scenes")
        if not isinstance(scenes, list) or not scenes:
            scenes = DEFAULT_DISPLAY_SETTINGS["scenes"]
        settings["scenes"] = list(scenes)
        return settings

    def save_display_settings(self, updates: dict[str, Any]) -> dict[str, Any]:
        merged = self.display_settings()
        merged.update(updates)
        self.replace_display_settings(merged)
        return merged

    def replace_display_settings(self, settings: dict[str, Any]) -> None:
        self._local.set_item(self.settings_key, json.dumps(settings, ensure_ascii=False))
