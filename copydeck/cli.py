"""
CLI interface for the catalog and its snapshots.

Usage:
    copydeck login alice
    copydeck snapshot save "before cleanup"
    copydeck snapshot list
    copydeck snapshot load user_alice_manual_1735689600000 --scope both
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Copydeck
from .errors import CopydeckError, SnapshotPermissionError, log_exception
from .local_state import clear_current_user, write_current_user
from .logging_config import configure_quiet_mode, enable_debug_mode
from .snapshot_store import check_access, key_belongs_to
from .types import SNAPSHOTS, Item, SnapshotMeta

# Configure quiet mode by default (suppress HTTP client chatter)
# Set COPYDECK_VERBOSE=1 to enable debug mode via environment
if os.environ.get("COPYDECK_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"copydeck {version('copydeck')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options, reset on every invocation
_json_output = False
_store_override: Optional[Path] = None
_user_override: Optional[str] = None


def _get_json_output() -> bool:
    return _json_output


app = typer.Typer(
    name="copydeck",
    help="Titles and copy catalog with per-user snapshots.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="COPYDECK_STORE_PATH",
        help="Path to the store directory (default: ~/.copydeck/)",
    )] = None,
    user: Annotated[Optional[str], typer.Option(
        "--user", "-u",
        help="Act as this user instead of the logged-in one",
    )] = None,
):
    """Titles and copy catalog with per-user snapshots."""
    global _json_output, _store_override, _user_override
    _json_output = output_json
    _store_override = store
    _user_override = user


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_deck() -> Copydeck:
    """Open the store, reporting setup errors cleanly."""
    try:
        return Copydeck(_store_override, user=_user_override)
    except (CopydeckError, ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _fail(e: Exception, context: str) -> None:
    """Report an error without a traceback; the traceback goes to the error log."""
    log_path = log_exception(e, context, store_path=_store_override)
    typer.echo(f"Error: {e}", err=True)
    typer.echo(f"(details in {log_path})", err=True)
    raise typer.Exit(1)


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _format_meta(meta: SnapshotMeta) -> str:
    line = (
        f"{meta.key}  {meta.label or '(no label)'}  "
        f"titles {meta.title_count} · contents {meta.content_count} · {meta.updated_text}"
    )
    if meta.is_legacy:
        line += "  [legacy]"
    return line


def _format_item(item: Item) -> str:
    parts = [f"{item.id}", item.text]
    if item.main_category:
        parts.append(f"[{item.main_category}]")
    if item.tags:
        parts.append("#" + " #".join(item.tags))
    parts.append(f"used {item.usage_count}")
    return "  ".join(parts)


def _item_dict(item: Item) -> dict:
    return {
        "id": item.id,
        "text": item.text,
        "main_category": item.main_category,
        "content_type": item.content_type,
        "tags": item.tags,
        "owner": item.owner,
        "usage_count": item.usage_count,
        "created_at": item.created_at,
    }


KindArgument = Annotated[str, typer.Argument(help="Item kind: title or content")]
YesOption = Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")]


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------

@app.command()
def login(
    username: Annotated[str, typer.Argument(help="User to act as from now on")],
):
    """Record the session user for later commands."""
    with _get_deck() as cd:
        try:
            write_current_user(cd.local, username)
        except CopydeckError as e:
            _fail(e, "login")
    typer.echo(f"Logged in as {username.strip()}")


@app.command()
def logout():
    """Forget the session user (commands then run in shared mode)."""
    with _get_deck() as cd:
        clear_current_user(cd.local)
    typer.echo("Logged out")


@app.command()
def whoami():
    """Show the user commands act as."""
    with _get_deck() as cd:
        name = cd.username
    if _get_json_output():
        _echo_json({"username": name})
    else:
        typer.echo(name or "(shared mode: no user)")


@app.command()
def overview():
    """Item counts and the latest snapshot."""
    with _get_deck() as cd:
        try:
            info = cd.overview()
        except CopydeckError as e:
            _fail(e, "overview")
    if _get_json_output():
        _echo_json(info)
        return
    latest = info["latest_snapshot"]
    typer.echo(f"titles:   {info['titles']}")
    typer.echo(f"contents: {info['contents']}")
    if latest:
        typer.echo(
            f"latest:   {latest['label']} · titles {latest['titleCount']} · "
            f"contents {latest['contentCount']} · {latest['updatedText']}"
        )
    else:
        typer.echo("latest:   (none)")


# -----------------------------------------------------------------------------
# Snapshots
# -----------------------------------------------------------------------------

snapshot_app = typer.Typer(
    name="snapshot",
    help="Save, list and restore unified snapshots.",
    rich_markup_mode=None,
)
app.add_typer(snapshot_app)


@snapshot_app.command("save")
def snapshot_save(
    label: Annotated[str, typer.Argument(help="Snapshot label (required)")] = "",
    allow_empty: Annotated[bool, typer.Option(
        "--allow-empty-label", help="Permit an unlabeled snapshot",
    )] = False,
):
    """Capture titles, contents, categories and settings."""
    with _get_deck() as cd:
        try:
            meta = cd.snapshots.save_snapshot(label, allow_empty_label=allow_empty)
        except CopydeckError as e:
            _fail(e, "snapshot save")
    if _get_json_output():
        _echo_json(meta.to_dict())
    else:
        typer.echo(
            f"Saved {meta.key}: titles {meta.title_count}, "
            f"contents {meta.content_count}, {meta.updated_text}"
        )


@snapshot_app.command("list")
def snapshot_list(
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n", help="Maximum results (default from config)",
    )] = None,
    query: Annotated[Optional[str], typer.Option(
        "--query", "-q", help="Only labels containing this text",
    )] = None,
):
    """List recent snapshots, newest first."""
    with _get_deck() as cd:
        try:
            results = cd.snapshots.list_snapshots(limit, query=query)
        except CopydeckError as e:
            _fail(e, "snapshot list")
    if _get_json_output():
        _echo_json([m.to_dict() for m in results])
    elif not results:
        typer.echo("No snapshots")
    else:
        for meta in results:
            typer.echo(_format_meta(meta))


@snapshot_app.command("load")
def snapshot_load(
    key: Annotated[str, typer.Argument(help="Snapshot key")],
    scope: Annotated[str, typer.Option(
        "--scope", help="What to restore: titles, contents or both",
    )] = "both",
    yes: YesOption = False,
):
    """Overwrite current data with a snapshot."""
    if not yes and not typer.confirm("Overwrite current data with this snapshot?"):
        raise typer.Exit(0)
    with _get_deck() as cd:
        try:
            result = cd.snapshots.load_snapshot(key, scope)
        except CopydeckError as e:
            _fail(e, f"snapshot load {key}")
    if _get_json_output():
        _echo_json(result.to_dict())
        return
    typer.echo(
        f"Loaded: titles {result.title_count}, contents {result.content_count}, "
        f"{result.updated_text}"
    )
    if not result.contents_restored and scope != "titles":
        typer.echo("Snapshot has no contents; contents were left unchanged.", err=True)


@snapshot_app.command("delete")
def snapshot_delete(
    key: Annotated[str, typer.Argument(help="Snapshot key")],
    yes: YesOption = False,
):
    """Delete a snapshot record from the store."""
    if not yes and not typer.confirm(f"Delete snapshot {key}?"):
        raise typer.Exit(0)
    with _get_deck() as cd:
        try:
            check_access(key, cd.username)
            if not key_belongs_to(key, cd.username):
                raise SnapshotPermissionError(key, cd.username, "shared legacy records cannot be deleted")
            removed = cd.records.delete_where(SNAPSHOTS, {"key": key})
        except CopydeckError as e:
            _fail(e, f"snapshot delete {key}")
    if not removed:
        typer.echo(f"No snapshot {key}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {key}")


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------

item_app = typer.Typer(
    name="item",
    help="Titles and contents.",
    rich_markup_mode=None,
)
app.add_typer(item_app)


@item_app.command("list")
def item_list(
    kind: KindArgument,
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    scene: Annotated[Optional[str], typer.Option("--scene")] = None,
    search: Annotated[Optional[str], typer.Option("--search", "-q")] = None,
):
    """List the user's titles or contents."""
    with _get_deck() as cd:
        try:
            items = cd.catalog.list_items(kind, category=category, scene=scene, search=search)
        except CopydeckError as e:
            _fail(e, "item list")
    if _get_json_output():
        _echo_json([_item_dict(i) for i in items])
    else:
        for item in items:
            typer.echo(_format_item(item))


@item_app.command("add")
def item_add(
    kind: KindArgument,
    text: Annotated[str, typer.Argument(help="Item text")],
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
    content_type: Annotated[Optional[str], typer.Option("--type")] = None,
    scene: Annotated[Optional[list[str]], typer.Option(
        "--scene", help="Scene label (repeatable)",
    )] = None,
):
    """Add a title or content."""
    with _get_deck() as cd:
        try:
            item = cd.catalog.add_item(
                kind, text, main_category=category, content_type=content_type, scene_tags=scene,
            )
        except CopydeckError as e:
            _fail(e, "item add")
    if _get_json_output():
        _echo_json(_item_dict(item))
    else:
        typer.echo(_format_item(item))


@item_app.command("import")
def item_import(
    kind: KindArgument,
    file: Annotated[str, typer.Argument(help="Text file, one item per line ('-' for stdin)")],
    category: Annotated[Optional[str], typer.Option("--category", "-c")] = None,
):
    """Bulk-add items, one per line."""
    if file == "-":
        lines = sys.stdin.read().splitlines()
    else:
        path = Path(file)
        if not path.exists():
            typer.echo(f"Error: file not found: {file}", err=True)
            raise typer.Exit(1)
        lines = path.read_text(encoding="utf-8").splitlines()
    with _get_deck() as cd:
        try:
            items = cd.catalog.bulk_import(kind, lines, main_category=category)
        except CopydeckError as e:
            _fail(e, "item import")
    typer.echo(f"Imported {len(items)} items")


@item_app.command("copy")
def item_copy(
    kind: KindArgument,
    item_id: Annotated[str, typer.Argument(help="Item id")],
):
    """Print an item's text and count the use."""
    with _get_deck() as cd:
        try:
            item = cd.catalog.record_copy(kind, item_id)
        except CopydeckError as e:
            _fail(e, "item copy")
    typer.echo(item.text)


@item_app.command("delete")
def item_delete(
    kind: KindArgument,
    item_id: Annotated[str, typer.Argument(help="Item id")],
):
    """Delete one item."""
    with _get_deck() as cd:
        try:
            cd.catalog.delete_item(kind, item_id)
        except CopydeckError as e:
            _fail(e, "item delete")
    typer.echo(f"Deleted {kind} {item_id}")


# -----------------------------------------------------------------------------
# Data Management
# -----------------------------------------------------------------------------

data_app = typer.Typer(
    name="data",
    help="Export, dedup, normalize or clear items.",
    rich_markup_mode=None,
)
app.add_typer(data_app)


@data_app.command("export")
def data_export(
    kind: KindArgument,
    output: Annotated[str, typer.Argument(help="Output file path (use '-' for stdout)")] = "-",
    fmt: Annotated[str, typer.Option("--format", "-f", help="json or csv")] = "json",
):
    """Export the user's titles or contents."""
    with _get_deck() as cd:
        try:
            text = cd.catalog.export_rows(kind, fmt)
        except CopydeckError as e:
            _fail(e, "data export")
    if output == "-":
        typer.echo(text)
    else:
        Path(output).write_text(text, encoding="utf-8")
        typer.echo(f"Exported {kind}s to {output}", err=True)


@data_app.command("dedup")
def data_dedup(kind: KindArgument):
    """Delete repeated texts, keeping the oldest."""
    with _get_deck() as cd:
        try:
            removed = cd.catalog.dedup(kind)
        except CopydeckError as e:
            _fail(e, "data dedup")
    typer.echo(f"Removed {removed} duplicates")


@data_app.command("normalize")
def data_normalize(kind: KindArgument):
    """Collapse whitespace in item texts."""
    with _get_deck() as cd:
        try:
            changed = cd.catalog.normalize_texts(kind)
        except CopydeckError as e:
            _fail(e, "data normalize")
    typer.echo(f"Normalized {changed} items")


@data_app.command("clear")
def data_clear(kind: KindArgument, yes: YesOption = False):
    """Delete all of the user's titles or contents."""
    if not yes and not typer.confirm(f"Delete all {kind}s? This cannot be undone."):
        raise typer.Exit(0)
    with _get_deck() as cd:
        try:
            removed = cd.catalog.clear(kind)
        except CopydeckError as e:
            _fail(e, "data clear")
    typer.echo(f"Deleted {removed} {kind}s")


# -----------------------------------------------------------------------------
# Categories and settings
# -----------------------------------------------------------------------------

category_app = typer.Typer(
    name="category",
    help="Per-user category lists.",
    rich_markup_mode=None,
)
app.add_typer(category_app)


def _echo_categories(names: list[str]) -> None:
    if _get_json_output():
        _echo_json(names)
    else:
        typer.echo(" · ".join(names))


@category_app.command("list")
def category_list(kind: KindArgument):
    """Show the category list."""
    with _get_deck() as cd:
        try:
            names = cd.state.categories(kind)
        except CopydeckError as e:
            _fail(e, "category list")
    _echo_categories(names)


@category_app.command("add")
def category_add(kind: KindArgument, name: Annotated[str, typer.Argument()]):
    """Append a category."""
    with _get_deck() as cd:
        try:
            names = cd.state.add_category(kind, name)
        except CopydeckError as e:
            _fail(e, "category add")
    _echo_categories(names)


@category_app.command("rename")
def category_rename(
    kind: KindArgument,
    old: Annotated[str, typer.Argument()],
    new: Annotated[str, typer.Argument()],
):
    """Rename a category and the items filed under it."""
    with _get_deck() as cd:
        try:
            names = cd.catalog.rename_category(kind, old, new)
        except CopydeckError as e:
            _fail(e, "category rename")
    _echo_categories(names)


@category_app.command("delete")
def category_delete(kind: KindArgument, name: Annotated[str, typer.Argument()]):
    """Remove a category (items keep their category value)."""
    with _get_deck() as cd:
        try:
            names = cd.state.delete_category(kind, name)
        except CopydeckError as e:
            _fail(e, "category delete")
    _echo_categories(names)


@category_app.command("copy")
def category_copy(
    source: Annotated[str, typer.Argument(help="Kind to copy from")],
    target: Annotated[str, typer.Argument(help="Kind to copy to")],
):
    """Copy one kind's category list over the other's."""
    with _get_deck() as cd:
        try:
            names = cd.state.copy_categories(source, target)
        except CopydeckError as e:
            _fail(e, "category copy")
    _echo_categories(names)


@category_app.command("reset")
def category_reset():
    """Reset both category lists to the defaults."""
    with _get_deck() as cd:
        cd.state.reset_categories()
    typer.echo("Categories reset")


settings_app = typer.Typer(
    name="settings",
    help="Per-user display settings.",
    rich_markup_mode=None,
)
app.add_typer(settings_app)


@settings_app.command("show")
def settings_show():
    """Show display settings."""
    with _get_deck() as cd:
        settings = cd.state.display_settings()
    if _get_json_output():
        _echo_json(settings)
    else:
        for key, value in settings.items():
            if isinstance(value, list):
                value = ", ".join(value)
            typer.echo(f"{key}: {value}")


@settings_app.command("set")
def settings_set(
    pairs: Annotated[list[str], typer.Argument(
        help="key=value pairs; scenes takes a comma-separated list",
    )],
):
    """Update display settings."""
    updates: dict = {}
    for pair in pairs:
        if "=" not in pair:
            typer.echo(f"Error: expected key=value, got {pair!r}", err=True)
            raise typer.Exit(1)
        key, value = pair.split("=", 1)
        if key == "scenes":
            updates[key] = [s.strip() for s in value.split(",") if s.strip()]
        else:
            updates[key] = value.strip()
    with _get_deck() as cd:
        cd.state.save_display_settings(updates)
    typer.echo("Settings saved")


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def main():
    app()


if __name__ == "__main__":
    main()
