"""
copydeck

A catalog of titles and short-form copy kept in a shared record store, with
per-user partitions and unified snapshots of the whole working set.

Quick Start:
    from copydeck import Copydeck

    with Copydeck(user="alice") as cd:
        cd.catalog.add_item("title", "Fireworks over the harbour")
        meta = cd.snapshots.save_snapshot("before cleanup")
        cd.snapshots.load_snapshot(meta.key, "both")

CLI Usage:
    copydeck login alice
    copydeck snapshot save "before cleanup"
    copydeck snapshot list
    copydeck snapshot load user_alice_manual_1735689600000

Environment Variables:
    COPYDECK_STORE_PATH   - Override default store location (~/.copydeck)
    COPYDECK_API_URL      - Remote record store URL (Supabase project)
    COPYDECK_API_KEY      - Remote record store API key
    COPYDECK_VERBOSE      - Set to 1 for debug logging in the CLI
"""

from .api import Copydeck, SnapshotService
from .errors import (
    CopydeckError,
    NotFoundError,
    SnapshotPermissionError,
    StoreError,
    ValidationError,
)
from .types import Item, Payload, RestoreResult, SnapshotMeta

__version__ = "0.1.0"
__all__ = [
    "Copydeck",
    "SnapshotService",
    "Item",
    "Payload",
    "SnapshotMeta",
    "RestoreResult",
    "CopydeckError",
    "ValidationError",
    "SnapshotPermissionError",
    "NotFoundError",
    "StoreError",
]
