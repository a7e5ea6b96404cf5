"""Tests for catalog operations on a user's titles and contents."""

import csv
import io
import json

import pytest
from conftest import seed, texts_of

from copydeck.catalog import Catalog, normalize_text
from copydeck.errors import ValidationError
from copydeck.local_state import LocalState
from copydeck.types import CONTENTS, TITLES


@pytest.fixture
def catalog(records, alice_state):
    return Catalog(records, alice_state)


class TestAdd:
    def test_tags_new_item(self, catalog, records):
        item = catalog.add_item("title", " 烟花下的城堡 ", main_category="情侣", scene_tags=["烟花", "user:bob"])

        assert item.text == "烟花下的城堡"
        assert item.owner == "alice"
        assert item.tags == ["烟花"]
        assert records.select(TITLES)[0]["scene_tags"] == ["烟花", "user:alice"]

    def test_rejects_empty_text(self, catalog):
        with pytest.raises(ValidationError):
            catalog.add_item("content", "  ")

    def test_unknown_kind(self, catalog):
        with pytest.raises(ValidationError, match="kind"):
            catalog.add_item("video", "x")

    def test_shared_mode_untagged(self, records, local):
        item = Catalog(records, LocalState(local, None)).add_item("title", "t", scene_tags=["夜景"])
        assert item.owner is None
        assert records.select(TITLES)[0]["scene_tags"] == ["夜景"]

    def test_bulk_import(self, catalog, records):
        items = catalog.bulk_import("content", ["one", "", "  two  ", "   "], main_category="亲子")
        assert [i.text for i in items] == ["one", "two"]
        assert texts_of(records, CONTENTS, "alice") == ["one", "two"]
        with pytest.raises(ValidationError):
            catalog.bulk_import("content", ["", " "])


class TestList:
    def test_only_own_items(self, catalog, records):
        seed(records, TITLES, ["mine"], owner="alice")
        seed(records, TITLES, ["theirs"], owner="bob")
        assert [i.text for i in catalog.list_items("title")] == ["mine"]

    def test_filters(self, catalog, records):
        seed(records, TITLES, ["Fireworks tonight"], owner="alice", main_category="情侣", scene_tags=["烟花"])
        seed(records, TITLES, ["Castle walk"], owner="alice", main_category="亲子", scene_tags=["港迪城堡"])

        assert [i.text for i in catalog.list_items("title", category="情侣")] == ["Fireworks tonight"]
        assert len(catalog.list_items("title", category="全部")) == 2
        assert [i.text for i in catalog.list_items("title", scene="港迪城堡")] == ["Castle walk"]
        assert [i.text for i in catalog.list_items("title", search="fire")] == ["Fireworks tonight"]

    def test_ascending_order(self, records, alice_state):
        seed(records, TITLES, ["first", "second"], owner="alice")
        asc = Catalog(records, alice_state, ascending=True)
        assert [i.text for i in asc.list_items("title")] == ["first", "second"]


class TestMaintenance:
    def test_record_copy(self, catalog, records):
        row = seed(records, TITLES, ["t"], owner="alice")[0]
        catalog.record_copy("title", row["id"])
        item = catalog.record_copy("title", str(row["id"]))
        assert item.usage_count == 2
        assert records.select(TITLES)[0]["usage_count"] == 2

    def test_cannot_touch_foreign_items(self, catalog, records):
        row = seed(records, TITLES, ["t"], owner="bob")[0]
        with pytest.raises(ValidationError):
            catalog.delete_item("title", row["id"])
        with pytest.raises(ValidationError):
            catalog.record_copy("title", row["id"])

    def test_delete_item(self, catalog, records):
        rows = seed(records, TITLES, ["a", "b"], owner="alice")
        catalog.delete_item("title", rows[0]["id"])
        assert texts_of(records, TITLES) == ["b"]

    def test_dedup_keeps_oldest(self, catalog, records):
        rows = seed(records, TITLES, ["Same  text", "same text", "other"], owner="alice")
        seed(records, TITLES, ["same text"], owner="bob")

        assert catalog.dedup("title") == 1

        remaining = [r["id"] for r in records.select(TITLES)]
        assert rows[0]["id"] in remaining
        assert rows[1]["id"] not in remaining
        assert texts_of(records, TITLES, "bob") == ["same text"]

    def test_normalize_texts(self, catalog, records):
        seed(records, CONTENTS, ["  a   b ", "clean"], owner="alice")
        assert catalog.normalize_texts("content") == 1
        assert texts_of(records, CONTENTS) == ["a b", "clean"]

    def test_normalize_text(self):
        assert normalize_text(" a\n\tb  ") == "a b"
        assert normalize_text(None) == ""

    def test_rename_category_moves_items(self, catalog, records, alice_state):
        seed(records, TITLES, ["t"], owner="alice", main_category="亲子")
        seed(records, TITLES, ["b"], owner="bob", main_category="亲子")

        names = catalog.rename_category("title", "亲子", "家人")

        assert "家人" in names
        by_text = {r["text"]: r["main_category"] for r in records.select(TITLES)}
        assert by_text == {"t": "家人", "b": "亲子"}

    def test_clear_only_own(self, catalog, records):
        seed(records, CONTENTS, ["a", "b"], owner="alice")
        seed(records, CONTENTS, ["c"], owner="bob")
        assert catalog.clear("content") == 2
        assert texts_of(records, CONTENTS) == ["c"]

    def test_counts(self, catalog, records):
        seed(records, TITLES, ["a", "b"], owner="alice")
        seed(records, CONTENTS, ["c"], owner="alice")
        assert catalog.counts() == {"title": 2, "content": 1}


class TestExport:
    def test_json(self, catalog, records):
        seed(records, TITLES, ["t"], owner="alice")
        data = json.loads(catalog.export_rows("title", "json"))
        assert [r["text"] for r in data] == ["t"]

    def test_csv(self, catalog, records):
        seed(records, TITLES, ["hello, world"], owner="alice", main_category="亲子", scene_tags=["烟花"])

        text = catalog.export_rows("title", "csv")

        assert text.startswith("\ufeff")
        rows = list(csv.reader(io.StringIO(text[1:])))
        assert rows[0][0] == "text"
        assert rows[1][0] == "hello, world"
        assert rows[1][1] == "亲子"
        assert rows[1][3] == "烟花|user:alice"

    def test_unknown_format(self, catalog):
        with pytest.raises(ValidationError):
            catalog.export_rows("title", "xml")
