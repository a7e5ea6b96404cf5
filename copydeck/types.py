"""
Data types for the catalog and its snapshots.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .ownership import owners_in, retag_for_current_user, strip_ownership_tags

# Collection names in the record store
TITLES = "titles"
CONTENTS = "contents"
SNAPSHOTS = "snapshots"
LEGACY_SNAPSHOTS = "title_snapshots"

# Item kind -> collection
COLLECTIONS = {"title": TITLES, "content": CONTENTS}

# Category sentinel ("all"): always first, never deletable
ALL_CATEGORY = "全部"

# Bumped whenever the payload document gains fields
PAYLOAD_VERSION = 2

# Columns assigned by the record store; never copied between rows
SERVER_FIELDS = ("id", "created_at")


def utc_now() -> str:
    """Current UTC timestamp with millisecond precision and a 'Z' suffix.

    Sorts lexically, so updated_at columns can be ordered as strings.
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms() -> int:
    """Milliseconds since the epoch, used in snapshot keys."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts 'Z' and '+00:00' suffixes as well as naive timestamps.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_updated_text(utc_iso: Optional[str]) -> str:
    """Render a UTC ISO timestamp as local 'YYYY-MM-DD HH:MM:SS' for display.

    Returns an empty string for empty input and the raw value if unparseable.
    """
    if not utc_iso:
        return ""
    try:
        return parse_utc_timestamp(utc_iso).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, OverflowError):
        return utc_iso


@dataclass
class Item:
    """
    A title or a content row.

    Ownership is an explicit attribute here. On the wire the owner travels as
    a ``user:<name>`` entry inside ``scene_tags``; from_row() splits it out
    and to_row() embeds exactly one again.

    Attributes:
        text: The user-facing content
        id: Store-assigned identifier (None until persisted)
        main_category: Category from the user's category list
        content_type: Type or account category
        tags: Scene labels, without ownership markers
        owner: Username the row belongs to (None in shared mode)
        usage_count: Times the item was copied
        created_at: Store-assigned creation timestamp
        extra: Any other columns, kept as-is (e.g. keywords, starred)
    """
    text: str
    id: Any = None
    main_category: Optional[str] = None
    content_type: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    owner: Optional[str] = None
    usage_count: int = 0
    created_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("id", "text", "main_category", "content_type", "scene_tags",
              "usage_count", "created_at")

    @classmethod
    def from_row(cls, row: dict) -> "Item":
        raw_tags = row.get("scene_tags") or []
        owners = owners_in(raw_tags)
        return cls(
            text=row.get("text") or "",
            id=row.get("id"),
            main_category=row.get("main_category"),
            content_type=row.get("content_type"),
            tags=strip_ownership_tags(raw_tags),
            owner=owners[0] if owners else None,
            usage_count=int(row.get("usage_count") or 0),
            created_at=row.get("created_at"),
            extra={k: v for k, v in row.items() if k not in cls._KNOWN},
        )

    @property
    def scene_tags(self) -> list[str]:
        """Wire form of the tag array, ownership marker included."""
        if self.owner:
            return retag_for_current_user(self.tags, self.owner)
        return strip_ownership_tags(self.tags)

    def to_row(self, *, include_server_fields: bool = True) -> dict:
        row: dict[str, Any] = dict(self.extra)
        row.update({
            "text": self.text,
            "main_category": self.main_category,
            "content_type": self.content_type,
            "scene_tags": self.scene_tags,
            "usage_count": self.usage_count,
        })
        if include_server_fields:
            if self.id is not None:
                row["id"] = self.id
            if self.created_at is not None:
                row["created_at"] = self.created_at
        return row


@dataclass
class Payload:
    """
    A self-contained snapshot document.

    Two shapes share this type. Current payloads (``provenance='snapshots'``)
    carry every field. Legacy payloads (``provenance='title_snapshots'``)
    carry titles only, so ``contents`` is None and the restore engine leaves
    the contents collection alone.
    """
    label: str
    updated_at: str
    titles: list[dict]
    contents: Optional[list[dict]] = None
    categories: dict[str, list[str]] = field(default_factory=dict)
    view_settings: Optional[dict] = None
    version: int = PAYLOAD_VERSION
    provenance: str = SNAPSHOTS

    @property
    def is_legacy(self) -> bool:
        return self.provenance == LEGACY_SNAPSHOTS or self.contents is None

    @property
    def title_count(self) -> int:
        return len(self.titles)

    @property
    def content_count(self) -> int:
        return len(self.contents) if self.contents else 0

    def to_document(self) -> dict:
        """Wire form stored in the ``payload`` column."""
        doc: dict[str, Any] = {
            "version": self.version,
            "label": self.label,
            "updated_at": self.updated_at,
            "titles": list(self.titles),
        }
        if self.contents is not None:
            doc["contents"] = list(self.contents)
        if self.categories:
            doc["categories"] = {k: list(v) for k, v in self.categories.items()}
        if self.view_settings is not None:
            doc["viewSettings"] = dict(self.view_settings)
        return doc

    @classmethod
    def from_document(cls, doc: dict, provenance: str = SNAPSHOTS) -> "Payload":
        titles = doc.get("titles")
        contents = doc.get("contents")
        categories = doc.get("categories")
        view_settings = doc.get("viewSettings")
        legacy = provenance == LEGACY_SNAPSHOTS
        return cls(
            label=str(doc.get("label") or ""),
            updated_at=str(doc.get("updated_at") or ""),
            titles=list(titles) if isinstance(titles, list) else [],
            contents=list(contents) if isinstance(contents, list) and not legacy else None,
            categories={
                k: list(v) for k, v in categories.items()
                if k in ("title", "content") and isinstance(v, list)
            } if isinstance(categories, dict) else {},
            view_settings=dict(view_settings) if isinstance(view_settings, dict) and not legacy else None,
            version=int(doc.get("version") or 1),
            provenance=provenance,
        )


@dataclass(frozen=True)
class SnapshotMeta:
    """Summary of a stored snapshot, for listing and confirmation messages."""
    key: str
    label: str
    title_count: int
    content_count: int
    updated_at: str
    source: str = SNAPSHOTS

    @property
    def updated_text(self) -> str:
        return format_updated_text(self.updated_at)

    @property
    def is_legacy(self) -> bool:
        return self.source == LEGACY_SNAPSHOTS

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "titleCount": self.title_count,
            "contentCount": self.content_count,
            "updated_at": self.updated_at,
            "updatedText": self.updated_text,
            "source": self.source,
        }


@dataclass(frozen=True)
class RestoreResult:
    """What a restore wrote, for UI confirmation."""
    title_count: int
    content_count: int
    updated_at: str
    titles_restored: bool = True
    contents_restored: bool = True

    @property
    def updated_text(self) -> str:
        return format_updated_text(self.updated_at)

    def to_dict(self) -> dict:
        return {
            "titleCount": self.title_count,
            "contentCount": self.content_count,
            "updatedText": self.updated_text,
            "titlesRestored": self.titles_restored,
            "contentsRestored": self.contents_restored,
        }
