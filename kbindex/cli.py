"""
CLI for the knowledge base.

Usage:
    kb add "Onboarding" "Start with the README..."
    kb search "how do I get started"
    kb list --page 2
    kb initiative add "Self-serve signup" --owner alice
"""

import json
import os
import select
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import KnowledgeBase
from .formatting import format_search_results_for_context
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import OperationResult


def _has_stdin_data() -> bool:
    """True only when stdin is a pipe with data ready to read."""
    if sys.stdin.isatty():
        return False
    try:
        ready, _, _ = select.select([sys.stdin], [], [], 0)
        return bool(ready)
    except (ValueError, OSError):
        return False


# Quiet by default; KBINDEX_VERBOSE=1 enables debug logging
if os.environ.get("KBINDEX_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"kb {version('kbindex')}")
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
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="kb",
    help="Knowledge base with semantic search.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

initiative_app = typer.Typer(
    name="initiative",
    help="Track initiatives: owner, status, metrics and PRD.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
app.add_typer(initiative_app, name="initiative")


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
        envvar="KBINDEX_STORE_PATH",
        help="Path to the store directory (default: ~/.kbindex/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Knowledge base with semantic search."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

ActorOption = Annotated[
    str,
    typer.Option(
        "--as",
        envvar="KBINDEX_ACTOR",
        help="Name recorded as the author of the change",
    )
]

PageOption = Annotated[int, typer.Option("--page", "-p", help="Page number (1-based)")]

PageSizeOption = Annotated[
    Optional[int],
    typer.Option("--page-size", help="Items per page (max 50)"),
]

LimitOption = Annotated[int, typer.Option("--limit", "-n", help="Maximum results to return")]


def _get_kb() -> KnowledgeBase:
    """Open the knowledge base, exiting cleanly on configuration errors."""
    import atexit

    try:
        kb = KnowledgeBase(_get_store_override())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(kb.close)
    return kb


def _default_actor() -> str:
    return os.environ.get("USER") or os.environ.get("USERNAME") or ""


def _to_json(value: Any) -> str:
    def default(obj):
        if hasattr(obj, "__dataclass_fields__"):
            return asdict(obj)
        if isinstance(obj, Exception):
            return type(obj).__name__
        return str(obj)
    return json.dumps(value, default=default, indent=2)


def _emit_result(result: OperationResult) -> None:
    """Print a result and exit 1 if it failed."""
    if _get_json_output():
        typer.echo(_to_json({
            "success": result.success,
            "message": result.message,
            "error": type(result.error).__name__ if result.error else None,
        }))
    elif result.success:
        typer.echo(result.message)
    else:
        typer.echo(f"Error: {result.message}", err=True)
    if not result.success:
        raise typer.Exit(1)


def _read_content(content: Optional[str], file: Optional[Path]) -> str:
    if content is not None and file is not None:
        typer.echo("Error: Give content or --file, not both", err=True)
        raise typer.Exit(1)
    if file is not None:
        try:
            return file.read_text(encoding="utf-8")
        except OSError as e:
            typer.echo(f"Error: Cannot read {file}: {e}", err=True)
            raise typer.Exit(1)
    if content == "-" or (content is None and _has_stdin_data()):
        return sys.stdin.read()
    if content is None:
        typer.echo("Error: No content (pass it as an argument, with --file, or on stdin)", err=True)
        raise typer.Exit(1)
    return content


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------

ContentArgument = Annotated[
    Optional[str],
    typer.Argument(help="Document content ('-' or omit to read stdin)"),
]

FileOption = Annotated[
    Optional[Path],
    typer.Option("--file", "-f", help="Read content from a file"),
]


@app.command()
def add(
    title: Annotated[str, typer.Argument(help="Document title")],
    content: ContentArgument = None,
    file: FileOption = None,
    actor: ActorOption = "",
):
    """
    Add a document to the knowledge base.

    \b
    Examples:
        kb add "Pricing" "Plans start at..."
        kb add "Runbook" -f runbook.md
        cat notes.txt | kb add "Notes"
    """
    text = _read_content(content, file)
    kb = _get_kb()
    _emit_result(kb.add_item(title, text, actor or _default_actor()))


@app.command()
def update(
    title: Annotated[str, typer.Argument(help="Document title (case-insensitive)")],
    content: ContentArgument = None,
    file: FileOption = None,
    actor: ActorOption = "",
):
    """Replace a document's content and re-index it."""
    text = _read_content(content, file)
    kb = _get_kb()
    _emit_result(kb.update_item(title, text, actor or _default_actor()))


@app.command()
def rename(
    title: Annotated[str, typer.Argument(help="Current title")],
    new_title: Annotated[str, typer.Argument(help="New title")],
    actor: ActorOption = "",
):
    """Rename a document."""
    kb = _get_kb()
    _emit_result(kb.rename_item(title, new_title, actor or _default_actor()))


@app.command()
def remove(
    title: Annotated[str, typer.Argument(help="Document title (case-insensitive)")],
):
    """Remove a document and its search vectors."""
    kb = _get_kb()
    _emit_result(kb.remove_item(title))


@app.command()
def get(
    title: Annotated[str, typer.Argument(help="Document title (case-insensitive)")],
):
    """Print a document's content."""
    kb = _get_kb()
    doc = kb.get_item(title)
    if doc is None:
        typer.echo(f'Error: No document titled "{title}" found.', err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(_to_json(doc.to_dict()))
    else:
        typer.echo(doc.content)


@app.command("list")
def list_docs(
    page: PageOption = 1,
    page_size: PageSizeOption = None,
):
    """List documents, newest last."""
    kb = _get_kb()
    if _get_json_output():
        result = kb.list_items(page, page_size)
        typer.echo(_to_json({
            "items": [m.to_dict() for m in result.items],
            "page": result.page,
            "page_size": result.page_size,
            "total_items": result.total_items,
            "total_pages": result.total_pages,
            "has_more": result.has_more,
        }))
    else:
        typer.echo(kb.format_items(page, page_size))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query text")],
    limit: LimitOption = 5,
):
    """
    Search documents (semantic) and initiatives (by name and description).
    """
    kb = _get_kb()
    results = kb.search(query, limit)
    if _get_json_output():
        typer.echo(_to_json({
            "documents": [asdict(r) for r in results.documents],
            "initiatives": [
                {"id": r.initiative.id, "name": r.initiative.name,
                 "score": r.score, "snippet": r.snippet}
                for r in results.initiatives
            ],
        }))
        return

    if not results.documents and not results.initiatives:
        typer.echo("No results.")
        return
    context = format_search_results_for_context(results.documents)
    if context:
        typer.echo(context)
    if results.initiatives:
        if context:
            typer.echo("")
        typer.echo("## Matching Initiatives\n")
        for r in results.initiatives:
            typer.echo(f"• {r.initiative.name} [{r.initiative.status}] ({r.score}): {r.snippet}")


@app.command()
def backfill(
    if_needed: Annotated[bool, typer.Option(
        "--if-needed",
        help="Skip if a backfill ran within the configured interval",
    )] = False,
):
    """Re-index every document into the vector index."""
    kb = _get_kb()
    if if_needed:
        ran = kb.backfill_if_needed()
        typer.echo("Backfill ran." if ran else "Backfill skipped (ran recently).")
        return
    result = kb.backfill_all()
    if _get_json_output():
        typer.echo(_to_json(asdict(result)))
    else:
        typer.echo(result.message)
    if not result.success:
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Initiatives
# -----------------------------------------------------------------------------

@initiative_app.command("add")
def initiative_add(
    name: Annotated[str, typer.Argument(help="Initiative name")],
    owner: Annotated[str, typer.Option("--owner", "-o", help="Owner")] = "",
    description: Annotated[str, typer.Option("--description", "-d", help="Description")] = "",
    actor: ActorOption = "",
):
    """Create an initiative (status: proposed)."""
    kb = _get_kb()
    actor = actor or _default_actor()
    _emit_result(kb.add_initiative(name, description, owner or actor, actor))


@initiative_app.command("list")
def initiative_list(
    owner: Annotated[Optional[str], typer.Option("--owner", "-o", help="Filter by owner")] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    page: PageOption = 1,
    page_size: Annotated[int, typer.Option("--page-size", help="Items per page (max 50)")] = 10,
):
    """List initiatives grouped by status."""
    kb = _get_kb()
    if _get_json_output():
        result = kb.list_initiatives(owner, status, page, page_size)
        typer.echo(_to_json([m.to_dict() for m in result.items]))
    else:
        typer.echo(kb.format_initiatives(owner=owner, status=status, page=page, page_size=page_size))


@initiative_app.command("show")
def initiative_show(
    id_or_name: Annotated[str, typer.Argument(help="Initiative id or name")],
):
    """Show one initiative."""
    kb = _get_kb()
    init = kb.get_initiative(id_or_name)
    if init is None:
        typer.echo(f'Error: Initiative "{id_or_name}" not found.', err=True)
        raise typer.Exit(1)
    if _get_json_output():
        typer.echo(_to_json(init.to_dict()))
    else:
        typer.echo(kb.format_initiative(id_or_name))


@initiative_app.command("status")
def initiative_status(
    id_or_name: Annotated[str, typer.Argument(help="Initiative id or name")],
    status: Annotated[str, typer.Argument(
        help="active, proposed, paused, completed or cancelled")],
    actor: ActorOption = "",
):
    """Change an initiative's status."""
    kb = _get_kb()
    _emit_result(kb.update_initiative_status(id_or_name, status, actor or _default_actor()))


@initiative_app.command("update")
def initiative_update(
    id_or_name: Annotated[str, typer.Argument(help="Initiative id or name")],
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    description: Annotated[Optional[str], typer.Option("--description", "-d")] = None,
    owner: Annotated[Optional[str], typer.Option("--owner", "-o")] = None,
    prd: Annotated[Optional[str], typer.Option("--prd", help="PRD link")] = None,
    actor: ActorOption = "",
):
    """Change an initiative's name, description, owner or PRD link."""
    kb = _get_kb()
    actor = actor or _default_actor()
    results = []
    if description is not None:
        results.append(kb.update_initiative_description(id_or_name, description, actor))
    if owner is not None:
        results.append(kb.update_initiative_owner(id_or_name, owner, actor))
    if prd is not None:
        results.append(kb.update_initiative_prd(id_or_name, prd, actor))
    # Rename last so the lookups above still match the old name
    if name is not None:
        results.append(kb.update_initiative_name(id_or_name, name, actor))
    if not results:
        typer.echo("Error: Nothing to update", err=True)
        raise typer.Exit(1)
    for result in results:
        _emit_result(result)


@initiative_app.command("metric")
def initiative_metric(
    id_or_name: Annotated[str, typer.Argument(help="Initiative id or name")],
    metric_type: Annotated[str, typer.Argument(help="gtm or product")],
    name: Annotated[str, typer.Argument(help="Metric name")],
    target: Annotated[str, typer.Argument(help="Target value")],
    actor: ActorOption = "",
):
    """Add an expected metric to an initiative."""
    kb = _get_kb()
    _emit_result(kb.add_initiative_metric(
        id_or_name, metric_type, name, target, actor or _default_actor()
    ))


@initiative_app.command("remove")
def initiative_remove(
    id_or_name: Annotated[str, typer.Argument(help="Initiative id or name")],
):
    """Remove an initiative."""
    kb = _get_kb()
    _emit_result(kb.remove_initiative(id_or_name))


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
        log_path = log_exception(e, context="kb CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
