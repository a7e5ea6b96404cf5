"""Tests for the restore engine."""

from unittest.mock import patch

import pytest
from conftest import seed, texts_of

from copydeck.errors import StoreError, ValidationError
from copydeck.local_state import LocalState
from copydeck.restore import RestoreEngine
from copydeck.types import CONTENTS, TITLES, Payload


def _payload(titles, contents, **kwargs):
    return Payload(
        label=kwargs.pop("label", "snap"),
        updated_at="2025-01-01T00:00:00.000Z",
        titles=[{"id": 900 + i, "text": t, "scene_tags": ["烟花", "user:bob"]} for i, t in enumerate(titles)],
        contents=None if contents is None else [{"text": c, "scene_tags": []} for c in contents],
        **kwargs,
    )


@pytest.fixture(params=["insert_first", "delete_first"])
def strategy(request):
    return request.param


class TestRestore:
    def test_replaces_only_the_users_partition(self, records, alice_state, strategy):
        seed(records, TITLES, ["a-old1", "a-old2"], owner="alice")
        seed(records, TITLES, ["b-keep"], owner="bob")
        seed(records, CONTENTS, ["a-c-old"], owner="alice")

        result = RestoreEngine(records, alice_state, strategy=strategy).restore(
            _payload(["n1", "n2", "n3"], ["c1"]), "both",
        )

        assert (result.title_count, result.content_count) == (3, 1)
        assert texts_of(records, TITLES, "alice") == ["n1", "n2", "n3"]
        assert texts_of(records, TITLES, "bob") == ["b-keep"]
        assert texts_of(records, CONTENTS, "alice") == ["c1"]

    def test_rows_retagged_for_current_user(self, records, alice_state, strategy):
        RestoreEngine(records, alice_state, strategy=strategy).restore(_payload(["n1"], []), "titles")

        row = records.select(TITLES)[0]
        assert row["scene_tags"] == ["烟花", "user:alice"]
        assert row["id"] != 900

    def test_scope_titles_leaves_contents(self, records, alice_state, strategy):
        seed(records, CONTENTS, ["keep-me"], owner="alice")

        result = RestoreEngine(records, alice_state, strategy=strategy).restore(
            _payload(["n1"], ["c1"]), "titles",
        )

        assert texts_of(records, CONTENTS, "alice") == ["keep-me"]
        assert result.contents_restored is False
        assert result.content_count == 0

    def test_scope_contents_leaves_titles(self, records, alice_state):
        seed(records, TITLES, ["keep-me"], owner="alice")
        RestoreEngine(records, alice_state).restore(_payload(["n1"], ["c1"]), "contents")
        assert texts_of(records, TITLES, "alice") == ["keep-me"]
        assert texts_of(records, CONTENTS, "alice") == ["c1"]

    def test_legacy_payload_never_touches_contents(self, records, alice_state, strategy):
        seed(records, CONTENTS, ["keep-me"], owner="alice")

        result = RestoreEngine(records, alice_state, strategy=strategy).restore(
            _payload(["n1"], None), "both",
        )

        assert texts_of(records, CONTENTS, "alice") == ["keep-me"]
        assert texts_of(records, TITLES, "alice") == ["n1"]
        assert result.contents_restored is False

    def test_empty_contents_list_empties_partition(self, records, alice_state):
        seed(records, CONTENTS, ["gone"], owner="alice")
        RestoreEngine(records, alice_state).restore(_payload([], []), "both")
        assert texts_of(records, CONTENTS, "alice") == []

    def test_retry_is_idempotent(self, records, alice_state, strategy):
        engine = RestoreEngine(records, alice_state, strategy=strategy)
        payload = _payload(["n1", "n2"], ["c1"])
        engine.restore(payload, "both")
        engine.restore(payload, "both")
        assert texts_of(records, TITLES, "alice") == ["n1", "n2"]
        assert texts_of(records, CONTENTS, "alice") == ["c1"]

    def test_shared_mode_replaces_whole_collection(self, records, local, strategy):
        seed(records, TITLES, ["a"], owner="alice")
        seed(records, TITLES, ["untagged"])

        RestoreEngine(records, LocalState(local, None), strategy=strategy).restore(
            _payload(["n1"], []), "titles",
        )

        rows = records.select(TITLES)
        assert [r["text"] for r in rows] == ["n1"]
        assert rows[0]["scene_tags"] == ["烟花"]

    def test_invalid_scope(self, records, alice_state):
        with pytest.raises(ValidationError, match="scope"):
            RestoreEngine(records, alice_state).restore(_payload([], []), "everything")

    def test_invalid_strategy(self, records, alice_state):
        with pytest.raises(ValueError):
            RestoreEngine(records, alice_state, strategy="merge")


class TestInterruptedRestore:
    def test_insert_first_failure_keeps_old_rows(self, records, alice_state):
        seed(records, TITLES, ["old"], owner="alice")
        engine = RestoreEngine(records, alice_state, strategy="insert_first")

        with patch.object(records, "delete", side_effect=StoreError("delete", TITLES, "boom")):
            with pytest.raises(StoreError):
                engine.restore(_payload(["new"], []), "titles")

        assert texts_of(records, TITLES, "alice") == ["new", "old"]

        engine.restore(_payload(["new"], []), "titles")
        assert texts_of(records, TITLES, "alice") == ["new"]

    def test_delete_first_failure_leaves_partition_empty(self, records, alice_state):
        seed(records, TITLES, ["old"], owner="alice")
        engine = RestoreEngine(records, alice_state, strategy="delete_first")

        with patch.object(records, "insert", side_effect=StoreError("insert", TITLES, "boom")):
            with pytest.raises(StoreError):
                engine.restore(_payload(["new"], []), "titles")

        assert texts_of(records, TITLES, "alice") == []

        engine.restore(_payload(["new"], []), "titles")
        assert texts_of(records, TITLES, "alice") == ["new"]


class TestLocalStateRestore:
    def test_categories_and_settings_written(self, records, alice_state):
        payload = _payload(
            ["n1"], ["c1"],
            categories={"title": ["全部", "新品"], "content": ["全部", "促销"]},
            view_settings={"brandColor": "#123456", "scenes": ["海边"]},
        )

        RestoreEngine(records, alice_state).restore(payload, "both")

        assert alice_state.categories("title") == ["全部", "新品"]
        assert alice_state.categories("content") == ["全部", "促销"]
        assert alice_state.display_settings()["brandColor"] == "#123456"
        assert alice_state.display_settings()["scenes"] == ["海边"]

    def test_empty_values_do_not_overwrite(self, records, alice_state):
        alice_state.add_category("title", "mine")
        alice_state.save_display_settings({"brandColor": "#abcdef"})

        RestoreEngine(records, alice_state).restore(
            _payload(["n1"], [], categories={"title": []}, view_settings={}), "both",
        )

        assert "mine" in alice_state.categories("title")
        assert alice_state.display_settings()["brandColor"] == "#abcdef"

    def test_categories_follow_scope(self, records, alice_state):
        payload = _payload([], [], categories={"title": ["全部", "T"], "content": ["全部", "C"]})

        RestoreEngine(records, alice_state).restore(payload, "titles")

        assert alice_state.categories("title") == ["全部", "T"]
        assert "C" not in alice_state.categories("content")
