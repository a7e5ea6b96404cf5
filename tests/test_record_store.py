"""Tests for the SQLite record store."""

import pytest

from copydeck.errors import StoreError


class TestInsertSelect:
    def test_assigns_server_fields(self, records):
        rows = records.insert("titles", [{"text": "a", "id": 99, "created_at": "x"}, {"text": "b"}])
        assert [r["text"] for r in rows] == ["a", "b"]
        assert rows[0]["id"] != 99
        assert rows[0]["created_at"] != "x"
        assert rows[0]["id"] < rows[1]["id"]

    def test_collections_are_separate(self, records):
        records.insert("titles", [{"text": "t"}])
        records.insert("contents", [{"text": "c"}])
        assert [r["text"] for r in records.select("titles")] == ["t"]

    def test_filter_order_limit(self, records):
        records.insert("titles", [
            {"text": "a", "n": 2, "k": "x"},
            {"text": "b", "n": 1, "k": "x"},
            {"text": "c", "n": 3, "k": "y"},
            {"text": "d", "k": "x"},
        ])
        rows = records.select("titles", eq={"k": "x"}, order_by="n", ascending=True)
        assert [r["text"] for r in rows] == ["b", "a", "d"]
        rows = records.select("titles", order_by="n", ascending=False, limit=2)
        assert [r["text"] for r in rows] == ["d", "c"]

    def test_empty_insert(self, records):
        assert records.insert("titles", []) == []

    def test_bad_row_rejects_batch(self, records):
        with pytest.raises(StoreError):
            records.insert("titles", [{"text": "ok"}, "not a row"])
        with pytest.raises(StoreError):
            records.insert("titles", [{"text": object()}])
        assert records.select("titles") == []


class TestUpsert:
    def test_replaces_by_key(self, records):
        first = records.upsert("snapshots", {"key": "k1", "payload": {"v": 1}})
        second = records.upsert("snapshots", {"key": "k1", "payload": {"v": 2}})
        assert first["id"] == second["id"]
        assert second["payload"] == {"v": 2}
        assert records.count("snapshots") == 1

    def test_requires_key(self, records):
        with pytest.raises(StoreError):
            records.upsert("snapshots", {"payload": {}})

    def test_only_key_conflicts(self, records):
        with pytest.raises(StoreError):
            records.upsert("snapshots", {"key": "k"}, on_conflict="id")


class TestUpdateDelete:
    def test_update_merges(self, records):
        row = records.insert("titles", [{"text": "a", "usage_count": 0}])[0]
        records.update("titles", row["id"], {"usage_count": 3})
        updated = records.select("titles")[0]
        assert updated["usage_count"] == 3
        assert updated["text"] == "a"
        assert updated["created_at"] == row["created_at"]

    def test_update_unknown_id(self, records):
        records.update("titles", 12345, {"text": "x"})
        assert records.select("titles") == []

    def test_delete_by_ids(self, records):
        rows = records.insert("titles", [{"text": "a"}, {"text": "b"}, {"text": "c"}])
        assert records.delete("titles", [rows[0]["id"], rows[2]["id"]]) == 2
        assert [r["text"] for r in records.select("titles")] == ["b"]
        assert records.delete("titles", []) == 0

    def test_delete_scoped_to_collection(self, records):
        row = records.insert("titles", [{"text": "a"}])[0]
        assert records.delete("contents", [row["id"]]) == 0

    def test_delete_all_and_where(self, records):
        records.insert("snapshots", [{"key": "a"}, {"key": "b"}])
        assert records.delete_where("snapshots", {"key": "a"}) == 1
        with pytest.raises(StoreError):
            records.delete_where("snapshots", {})
        assert records.delete_all("snapshots") == 1
        assert records.count("snapshots") == 0
