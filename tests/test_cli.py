"""Tests for the copydeck command line."""

import json

import pytest
from typer.testing import CliRunner

from copydeck.cli import app
from copydeck.types import SNAPSHOTS

runner = CliRunner()


@pytest.fixture
def cli(store_path):
    """Invoke the CLI against the test store directory."""
    def _invoke(*args, input=None):
        return runner.invoke(app, ["--store", str(store_path), *args], input=input)
    return _invoke


class TestSession:
    def test_login_whoami_logout(self, cli):
        assert "shared mode" in cli("whoami").output
        result = cli("login", "alice")
        assert result.exit_code == 0
        assert "alice" in cli("whoami").output
        cli("logout")
        assert "shared mode" in cli("whoami").output

    def test_user_option_overrides_session(self, cli):
        cli("login", "alice")
        result = cli("--json", "--user", "bob", "whoami")
        assert json.loads(result.output) == {"username": "bob"}


class TestSnapshotCommands:
    def test_save_list_load(self, cli):
        cli("login", "alice")
        cli("item", "add", "title", "Castle at night", "--scene", "夜景")
        cli("item", "add", "content", "See the fireworks")

        saved = cli("--json", "snapshot", "save", "q1")
        assert saved.exit_code == 0, saved.output
        meta = json.loads(saved.output)
        assert (meta["titleCount"], meta["contentCount"]) == (1, 1)

        listed = json.loads(cli("--json", "snapshot", "list").output)
        assert [m["key"] for m in listed] == [meta["key"]]

        cli("data", "clear", "title", "--yes")
        loaded = cli("snapshot", "load", meta["key"], "--yes")
        assert loaded.exit_code == 0, loaded.output
        assert "titles 1" in loaded.output

        items = json.loads(cli("--json", "item", "list", "title").output)
        assert [i["text"] for i in items] == ["Castle at night"]
        assert items[0]["tags"] == ["夜景"]

    def test_empty_label_fails(self, cli):
        result = cli("--user", "alice", "snapshot", "save", "  ")
        assert result.exit_code == 1
        assert "label must not be empty" in result.output

    def test_foreign_snapshot_denied(self, cli):
        key = json.loads(cli("--json", "--user", "bob", "snapshot", "save", "b").output)["key"]
        result = cli("--user", "alice", "snapshot", "load", key, "--yes")
        assert result.exit_code == 1
        assert "not accessible" in result.output

    def test_load_declined(self, cli):
        key = json.loads(cli("--json", "--user", "alice", "snapshot", "save", "a").output)["key"]
        result = cli("--user", "alice", "snapshot", "load", key, input="n\n")
        assert result.exit_code == 0
        assert "Loaded" not in result.output

    def test_delete(self, cli):
        key = json.loads(cli("--json", "--user", "alice", "snapshot", "save", "a").output)["key"]
        assert cli("--user", "bob", "snapshot", "delete", key, "--yes").exit_code == 1
        assert cli("--user", "alice", "snapshot", "delete", key, "--yes").exit_code == 0
        assert "No snapshots" in cli("--user", "alice", "snapshot", "list").output

    def test_shared_legacy_record_not_deletable(self, cli, open_deck):
        cd = open_deck(user="alice")
        cd.records.upsert(SNAPSHOTS, {
            "key": "snap_1700000000000",
            "payload": {"label": "legacy", "titles": [{"text": "t"}]},
            "updated_at": "2023-11-14T22:13:20.000Z",
        })

        result = cli("--user", "alice", "snapshot", "delete", "snap_1700000000000", "--yes")

        assert result.exit_code == 1
        assert "cannot be deleted" in result.output
        assert cd.records.count(SNAPSHOTS) == 1

    def test_list_empty(self, cli):
        assert "No snapshots" in cli("--user", "alice", "snapshot", "list").output


class TestErrorLog:
    def test_written_to_store_directory(self, cli, store_path, tmp_path):
        result = cli("--user", "alice", "snapshot", "save", "  ")

        assert result.exit_code == 1
        log = store_path / "copydeck-errors.log"
        assert "ValidationError" in log.read_text(encoding="utf-8")
        assert not (tmp_path / "env-store" / "copydeck-errors.log").exists()


class TestItemCommands:
    def test_import_copy_delete(self, cli, tmp_path):
        source = tmp_path / "lines.txt"
        source.write_text("first\n\nsecond\n", encoding="utf-8")

        assert "Imported 2" in cli("--user", "alice", "item", "import", "content", str(source)).output
        items = json.loads(cli("--json", "--user", "alice", "item", "list", "content").output)
        item_id = str(items[0]["id"])

        copied = cli("--user", "alice", "item", "copy", "content", item_id)
        assert copied.output.strip() == items[0]["text"]

        assert cli("--user", "alice", "item", "delete", "content", item_id).exit_code == 0
        assert len(json.loads(cli("--json", "--user", "alice", "item", "list", "content").output)) == 1

    def test_import_missing_file(self, cli, tmp_path):
        result = cli("--user", "alice", "item", "import", "title", str(tmp_path / "nope.txt"))
        assert result.exit_code == 1

    def test_unknown_kind(self, cli):
        result = cli("--user", "alice", "item", "list", "video")
        assert result.exit_code == 1
        assert "Unknown item kind" in result.output


class TestDataCommands:
    def test_dedup_and_export(self, cli, tmp_path):
        for text in ("dup", "dup", "unique"):
            cli("--user", "alice", "item", "add", "title", text)
        assert "Removed 1" in cli("--user", "alice", "data", "dedup", "title").output

        out = tmp_path / "titles.csv"
        result = cli("--user", "alice", "data", "export", "title", str(out), "--format", "csv")
        assert result.exit_code == 0
        assert out.read_text(encoding="utf-8").count("\n") == 3


class TestCategoryAndSettings:
    def test_category_commands(self, cli):
        added = json.loads(cli("--json", "--user", "alice", "category", "add", "title", "新品").output)
        assert added[-1] == "新品"
        renamed = json.loads(cli("--json", "--user", "alice", "category", "rename", "title", "新品", "爆款").output)
        assert "爆款" in renamed
        result = cli("--user", "alice", "category", "delete", "title", "全部")
        assert result.exit_code == 1

    def test_settings(self, cli):
        cli("--user", "alice", "settings", "set", "brandColor=#000000", "scenes=海边, 夜景")
        settings = json.loads(cli("--json", "--user", "alice", "settings", "show").output)
        assert settings["brandColor"] == "#000000"
        assert settings["scenes"] == ["海边", "夜景"]

    def test_overview(self, cli):
        cli("--user", "alice", "item", "add", "title", "t")
        info = json.loads(cli("--json", "--user", "alice", "overview").output)
        assert info["titles"] == 1
        assert info["latest_snapshot"] is None
