"""
Shared pytest fixtures for copydeck tests.

Everything runs against the SQLite record store in a temporary store
directory. Snapshot keys embed epoch milliseconds, so a fixture makes the
clock tick once per key to keep back-to-back saves distinct.
"""

import itertools
from pathlib import Path

import pytest

from copydeck.api import Copydeck
from copydeck.config import StoreConfig
from copydeck.local_state import LocalState, LocalStore
from copydeck.record_store import RecordStore


@pytest.fixture(autouse=True)
def isolated_store_env(tmp_path, monkeypatch):
    """Keep error logs and default paths inside the test's tmp dir."""
    monkeypatch.setenv("COPYDECK_STORE_PATH", str(tmp_path / "env-store"))
    monkeypatch.delenv("COPYDECK_API_URL", raising=False)
    monkeypatch.delenv("COPYDECK_API_KEY", raising=False)


@pytest.fixture(autouse=True)
def ticking_clock(monkeypatch):
    """Distinct, increasing epoch-ms values for snapshot keys."""
    counter = itertools.count(1735689600000)
    monkeypatch.setattr("copydeck.snapshot_store.epoch_ms", lambda: next(counter))


@pytest.fixture
def records(tmp_path):
    store = RecordStore(tmp_path / "records.db")
    yield store
    store.close()


@pytest.fixture
def local(tmp_path):
    store = LocalStore(tmp_path / "local.db")
    yield store
    store.close()


@pytest.fixture
def alice_state(local):
    return LocalState(local, "alice")


@pytest.fixture
def store_path(tmp_path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def open_deck(store_path):
    """Factory for Copydeck instances sharing one store directory."""
    opened = []

    def _open(user=None, **config_kwargs):
        config = StoreConfig(path=store_path, **config_kwargs)
        cd = Copydeck(config=config, user=user)
        opened.append(cd)
        return cd

    yield _open
    for cd in opened:
        cd.close()


def seed(records, collection, texts, owner=None, **fields):
    """Insert plain rows, tagged for ``owner`` when given."""
    rows = []
    for text in texts:
        tags = list(fields.get("scene_tags", []))
        if owner:
            tags.append(f"user:{owner}")
        row = {"text": text, "scene_tags": tags, "usage_count": 0}
        row.update({k: v for k, v in fields.items() if k != "scene_tags"})
        rows.append(row)
    return records.insert(collection, rows)


def texts_of(records, collection, owner=None):
    """Texts in the collection, optionally restricted to one owner's tag."""
    rows = records.select(collection, order_by="id")
    if owner:
        rows = [r for r in rows if f"user:{owner}" in (r.get("scene_tags") or [])]
    return sorted(r["text"] for r in rows)
