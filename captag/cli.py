"""
CLI interface for the caption workbench.

Usage:
    captag import ./dataset/
    captag tags
    captag rename-tag "blonde hair" "blond hair"
    captag export ./out/
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .backend import create_store
from .config import load_or_create_config
from .engine import BulkResult, EngineState
from .errors import CaptagError
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .operations import (
    AppendCaption,
    DeleteTag,
    DeleteText,
    InsertAtMatch,
    Operation,
    RenameTag,
    SearchReplace,
)
from .types import Item

# Configure quiet mode by default
# Set CAPTAG_VERBOSE=1 to enable debug mode via environment
if os.environ.get("CAPTAG_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"captag {version('captag')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="captag",
    help="Caption and tag workbench for image datasets.",
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
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="CAPTAG_STORE_PATH",
        help="Path to the store directory (default: ~/.captag/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Caption and tag workbench for image datasets."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

YesOption = Annotated[bool, typer.Option(
    "--yes", "-y",
    help="Skip the confirmation prompt",
)]

DryRunOption = Annotated[bool, typer.Option(
    "--dry-run",
    help="Show what would change without writing anything",
)]

RegexOption = Annotated[bool, typer.Option(
    "--regex", "-r",
    help="Treat the pattern as a regular expression",
)]


def _get_state() -> EngineState:
    """Open the configured store, handling errors gracefully."""
    import atexit

    try:
        config = load_or_create_config(_store_override)
        store = create_store(config)
    except (OSError, ValueError, CaptagError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(store.close)
    configure_ops_log(config.path)
    return EngineState(store, max_workers=config.max_workers)


def _echo_json(payload) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _format_item(item: Item) -> str:
    caption = item.caption.replace("\n", " ") if item.caption else "(no caption)"
    return f"{item.id}  {item.filename}  {caption}"


def _format_result(result: BulkResult) -> str:
    if result.nothing_found:
        return "Nothing found: no captions matched."
    lines = []
    for change in result.changes:
        lines.append(f"{change.id}: {change.before!r} -> {change.after!r}")
    if result.dry_run:
        lines.append(
            f"Would modify {result.attempted} of {result.matched} matching images"
            f" ({result.occurrences} occurrences)."
        )
    else:
        lines.append(f"Modified {result.modified_count} of {result.attempted} images.")
        for item_id, error in result.failures.items():
            lines.append(f"Failed {item_id}: {error}")
    return "\n".join(lines)


def _run_bulk(operation: Operation, yes: bool, dry_run: bool) -> None:
    """Count, confirm, apply, report."""
    state = _get_state()
    try:
        matching = state.count_matching(operation)
        if matching and not dry_run and not yes:
            typer.confirm(
                f"This will {operation.describe()} the captions of {matching} images. "
                "This cannot be undone. Continue?",
                abort=True,
            )
        result = state.apply(operation, dry_run=dry_run)
    except CaptagError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if _get_json_output():
        _echo_json(result.to_dict())
    else:
        typer.echo(_format_result(result))
    if result.failures:
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("import")
def import_(
    paths: Annotated[list[Path], typer.Argument(help="Image files, caption files or directories")],
):
    """
    Import images, pairing each with a same-named .txt caption file.

    \b
    Examples:
        captag import ./dataset/
        captag import cat.png cat.txt
    """
    from .dataset import import_paths

    state = _get_state()
    try:
        summary = import_paths(state, paths)
    except (CaptagError, FileNotFoundError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Imported {summary.added} images ({summary.captioned} with captions)")
    for name in summary.skipped:
        typer.echo(f"Skipped {name}", err=True)


@app.command("list")
def list_items():
    """List images with their captions."""
    state = _get_state()
    items = state.items()
    if _get_json_output():
        _echo_json([item.to_dict() for item in items])
        return
    for item in items:
        typer.echo(_format_item(item))
    summary = state.summary()
    typer.echo(f"{summary.total} images, {summary.captioned} captioned")


@app.command()
def tags(
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n",
        help="Maximum tags to show",
    )] = None,
):
    """Show tags ranked by how many images carry them."""
    state = _get_state()
    ranked = state.ranked_tags()
    if limit is not None:
        ranked = ranked[:limit]
    if _get_json_output():
        _echo_json([{"tag": tag, "count": count} for tag, count in ranked])
        return
    width = max((len(tag) for tag, _ in ranked), default=0)
    for tag, count in ranked:
        typer.echo(f"{tag.ljust(width)}  {count}")


@app.command()
def caption(
    id: Annotated[str, typer.Argument(help="Image ID")],
    text: Annotated[Optional[str], typer.Argument(help="New caption (omit to show)")] = None,
):
    """Show or replace the caption of one image."""
    state = _get_state()
    if text is None:
        current = state.store.get_caption(id)
        if current is None:
            typer.echo(f"Not found: {id}", err=True)
            raise typer.Exit(1)
        typer.echo(current)
        return
    if not state.set_caption(id, text):
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Updated {id}")


@app.command()
def delete(
    id: Annotated[str, typer.Argument(help="Image ID")],
    yes: YesOption = False,
):
    """Delete one image and its caption."""
    state = _get_state()
    if not yes:
        typer.confirm(f"Delete {id}? This cannot be undone.", abort=True)
    if not state.delete_item(id):
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {id}")


@app.command()
def clear(yes: YesOption = False):
    """Delete all images and captions."""
    state = _get_state()
    total = state.store.count()
    if not total:
        typer.echo("Nothing to clear.")
        return
    if not yes:
        typer.confirm(
            f"Clear all {total} images and captions? This cannot be undone.",
            abort=True,
        )
    removed = state.clear()
    typer.echo(f"Deleted {removed} images")


@app.command("delete-tag")
def delete_tag(
    tag: Annotated[str, typer.Argument(help="Tag to remove from every caption")],
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Remove a tag from all captions."""
    _run_bulk(DeleteTag(tag), yes, dry_run)


@app.command("rename-tag")
def rename_tag(
    old: Annotated[str, typer.Argument(help="Existing tag")],
    new: Annotated[str, typer.Argument(help="Replacement tag")],
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Rename the first occurrence of a tag in every caption."""
    _run_bulk(RenameTag(old, new), yes, dry_run)


@app.command()
def replace(
    pattern: Annotated[str, typer.Argument(help="Text or pattern to find")],
    replacement: Annotated[str, typer.Argument(help="Replacement ($1, $<name>, $& expand; $$ for a dollar)")],
    regex: RegexOption = False,
    case_sensitive: Annotated[bool, typer.Option(
        "--case-sensitive", "-c",
        help="Match case exactly",
    )] = False,
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Find and replace text across all captions."""
    _run_bulk(SearchReplace(pattern, replacement, use_regex=regex, case_sensitive=case_sensitive), yes, dry_run)


@app.command()
def insert(
    target: Annotated[str, typer.Argument(help="Text or pattern to find")],
    text: Annotated[str, typer.Argument(help="Text to insert")],
    regex: RegexOption = False,
    append: Annotated[bool, typer.Option(
        "--append", "-a",
        help="Insert after the match instead of before it",
    )] = False,
    if_absent: Annotated[bool, typer.Option(
        "--if-absent",
        help="Skip captions where the text is already next to the match",
    )] = False,
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Insert text next to the first match in each caption."""
    operation = InsertAtMatch(
        target, text, use_regex=regex, prepend=not append, only_if_absent=if_absent,
    )
    _run_bulk(operation, yes, dry_run)


@app.command("delete-text")
def delete_text(
    target: Annotated[str, typer.Argument(help="Word or pattern to delete")],
    regex: RegexOption = False,
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Delete a word (or regex matches) from all captions."""
    _run_bulk(DeleteText(target, use_regex=regex), yes, dry_run)


@app.command("append")
def append_caption(
    text: Annotated[str, typer.Argument(help="Caption text to append")],
    yes: YesOption = False,
    dry_run: DryRunOption = False,
):
    """Append the same text to every caption."""
    _run_bulk(AppendCaption(text), yes, dry_run)


@app.command()
def matches(
    tag: Annotated[str, typer.Argument(help="Tag to look for")],
):
    """List the images carrying a tag, in navigation order."""
    state = _get_state()
    step = state.select_tag(tag)
    if step is None:
        typer.echo(f"No images with tag: {tag}", err=True)
        raise typer.Exit(1)
    steps = [step]
    for _ in range(step.total - 1):
        steps.append(state.next_match())

    if _get_json_output():
        _echo_json([
            {"id": s.item_id, "position": s.position, "total": s.total}
            for s in steps
        ])
        return
    for s in steps:
        item = state.store.get(s.item_id)
        filename = item.filename if item else ""
        typer.echo(f"{s}  {s.item_id}  {filename}")


@app.command()
def export(
    destination: Annotated[Path, typer.Argument(help="Archive path or directory")] = Path("."),
):
    """Export images and captions as a zip archive."""
    from .dataset import export_archive

    state = _get_state()
    try:
        path = export_archive(state.store, destination)
    except CaptagError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Exported to {path}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="captag CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
