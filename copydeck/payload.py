"""
Snapshot payload builder.

Assembles titles, contents, category lists and display settings into one
versioned, labeled document. Rows come either from the record store (the
user's partition, read fresh) or from the caller's in-memory state, which
may hold fields not yet persisted (a pending star flag, for example).
"""

import logging
from typing import Optional, Sequence, Union

from .errors import ValidationError
from .local_state import LocalState
from .ownership import fetch_all_for_user
from .types import CONTENTS, PAYLOAD_VERSION, TITLES, Item, Payload, utc_now

logger = logging.getLogger(__name__)

Rows = Sequence[Union[dict, Item]]


def _as_row(row: Union[dict, Item]) -> dict:
    if isinstance(row, Item):
        return row.to_row()
    return dict(row)


def clean_label(label: Optional[str], *, allow_empty: bool = False) -> str:
    """Trim a snapshot label, rejecting empty labels unless allowed."""
    cleaned = (label or "").strip()
    if not cleaned and not allow_empty:
        raise ValidationError("Snapshot label must not be empty")
    return cleaned


class PayloadBuilder:
    """
    Builds snapshot payloads for one user.

    Args:
        store: Record store to read live rows from
        state: The user's local categories and settings
        ascending: created_at order of the captured rows
    """

    def __init__(self, store, state: LocalState, *, ascending: bool = False):
        self._store = store
        self._state = state
        self._ascending = ascending

    def build(
        self,
        label: Optional[str],
        *,
        titles: Optional[Rows] = None,
        contents: Optional[Rows] = None,
        allow_empty_label: bool = False,
    ) -> Payload:
        """
        Build a payload.

        Args:
            label: Snapshot label; trimmed, must be non-empty unless
                allow_empty_label is set
            titles: In-memory title rows; None reads them from the store
            contents: In-memory content rows; None reads them from the store
            allow_empty_label: Permit an unlabeled snapshot

        Raises:
            ValidationError: If the label is empty and not allowed
            StoreError: If reading live rows fails
        """
        label = clean_label(label, allow_empty=allow_empty_label)
        username = self._state.username

        if titles is None:
            title_rows = fetch_all_for_user(self._store, TITLES, username, ascending=self._ascending)
        else:
            title_rows = [_as_row(r) for r in titles]
        if contents is None:
            content_rows = fetch_all_for_user(self._store, CONTENTS, username, ascending=self._ascending)
        else:
            content_rows = [_as_row(r) for r in contents]

        payload = Payload(
            label=label,
            updated_at=utc_now(),
            titles=title_rows,
            contents=content_rows,
            categories={
                "title": self._state.categories("title"),
                "content": self._state.categories("content"),
            },
            view_settings=self._state.display_settings(),
            version=PAYLOAD_VERSION,
        )
        logger.debug(
            "Built payload %r: %d titles, %d contents (%s)",
            label, payload.title_count, payload.content_count,
            "provided" if titles is not None or contents is not None else "live",
        )
        return payload
