import asyncio
import hashlib
from datetime import UTC, datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from kbsearch.config import Config
from kbsearch.logging import configure_logging, uvicorn_log_config
from kbsearch.search.file_types import normalize_file_type
from kbsearch.search.types import CandidateFilter, SearchableDocument, SearchError, SearchMode, SearchOptions
from kbsearch.utils import truncate

console = Console()

SNIPPET_DISPLAY_LENGTH = 80


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """kbsearch - hybrid knowledge-base search"""
    try:
        ctx.ensure_object(dict)
        ctx.obj["config"] = Config()
    except ValueError as e:
        # Only fail if we're running a command that needs config
        ctx.obj["config_error"] = str(e)

    # If no subcommand, show help
    if ctx.invoked_subcommand is None:
        console.print("[bold]kbsearch[/bold] - hybrid knowledge-base search\n")
        console.print("Run [cyan]kbsearch serve[/cyan] to start the server.")
        console.print("\nUse [cyan]kbsearch --help[/cyan] for all commands.")


def _require_config(ctx) -> Config:
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {ctx.obj['config_error']}")
        raise SystemExit(1)
    config = ctx.obj["config"]
    configure_logging(config.log_level, config.log_format)
    return config


@main.command()
@click.pass_context
def status(ctx):
    """Show configuration and index size."""
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {ctx.obj['config_error']}")
        console.print()
        console.print("[bold]Environment variables:[/bold]")
        console.print("  OPENAI_API_KEY, ANTHROPIC_API_KEY - LLM provider keys")
        console.print("  KBSEARCH_COMPLETION_MODEL, KBSEARCH_EMBEDDING_MODEL - model selection")
        console.print("  KBSEARCH_DB_PATH - index location")
        raise SystemExit(1)

    config = ctx.obj["config"]

    console.print("[bold]kbsearch status[/bold]")
    console.print()
    console.print(f"Database: [cyan]{config.db_path}[/cyan]")
    console.print(f"Completion model: {config.completion_model}")
    console.print(f"Embedding model: {config.embedding_model or '[dim]none[/dim]'}")
    console.print(f"Semantic strategy: {config.semantic_strategy}")
    console.print(f"Weights: lexical={config.lexical_weight} semantic={config.semantic_weight}")

    if config.db_path.exists():
        stats = asyncio.run(_with_runtime(config, lambda rt: rt.search.stats()))
        console.print(f"Indexed documents: [green]{stats['total']}[/green]")
        for collection_id, count in sorted(stats["collections"].items()):
            console.print(f"  {collection_id}: {count}")
    else:
        console.print("Indexed documents: [dim]none (no database yet)[/dim]")


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx, host: str, port: int, reload: bool):
    """Start the kbsearch API server."""
    config = _require_config(ctx)

    import uvicorn

    console.print(f"[bold]kbsearch server[/bold] starting on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    uvicorn.run(
        "kbsearch.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_config=uvicorn_log_config(config.log_format),
    )


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kb", "kb_id", required=True, help="Knowledge base (collection) id")
@click.pass_context
def index(ctx, paths: tuple[Path, ...], kb_id: str):
    """Index text files into a knowledge base."""
    config = _require_config(ctx)
    try:
        indexed = asyncio.run(_with_runtime(config, lambda rt: _index_files(rt, paths, kb_id)))
    except SearchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    console.print(f"Indexed [green]{indexed}[/green] file(s) into [cyan]{kb_id}[/cyan]")


@main.command()
@click.argument("query")
@click.option("--kb", "kb_id", default=None, help="Restrict to one knowledge base")
@click.option("--mode", type=click.Choice(["hybrid", "lexical", "semantic"]), default="hybrid")
@click.option("--limit", default=10, help="Number of results")
@click.option("--type", "file_types", multiple=True, help="Only these file types (repeatable)")
@click.option("--tag", "tags", multiple=True, help="Require this tag (repeatable)")
@click.pass_context
def search(
    ctx,
    query: str,
    kb_id: str | None,
    mode: str,
    limit: int,
    file_types: tuple[str, ...],
    tags: tuple[str, ...],
):
    """Search indexed documents."""
    config = _require_config(ctx)
    filters = None
    if file_types or tags:
        filters = CandidateFilter(
            file_types=frozenset(t for t in map(normalize_file_type, file_types) if t) if file_types else None,
            tags=frozenset(tags),
        )
    options = SearchOptions(collection_id=kb_id, limit=limit, mode=SearchMode(mode), filters=filters)
    try:
        results = asyncio.run(_with_runtime(config, lambda rt: rt.search.search(query, options)))
    except SearchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if not results:
        console.print("[dim]No results[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("KB")
    table.add_column("Snippet")
    for r in results:
        table.add_row(
            f"{r.hybrid_score:.3f}",
            r.document.name,
            r.document.collection_id,
            _one_line(r.snippet or ""),
        )
    console.print(table)


@main.command()
@click.argument("query")
@click.option("--kb", "kb_id", default=None, help="Restrict to one knowledge base")
@click.option("--limit", default=10, help="Number of suggestions")
@click.pass_context
def suggest(ctx, query: str, kb_id: str | None, limit: int):
    """Suggest completions and related searches for a query."""
    config = _require_config(ctx)
    items = asyncio.run(_with_runtime(config, lambda rt: rt.search.suggest(query, kb_id, limit)))
    if not items:
        console.print("[dim]No suggestions[/dim]")
        return
    for item in items:
        console.print(f"  {item}")


def _one_line(text: str) -> str:
    return truncate(" ".join(text.split()), SNIPPET_DISPLAY_LENGTH)


def _document_id(path: Path) -> str:
    return hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:16]


async def _index_files(runtime, paths: tuple[Path, ...], kb_id: str) -> int:
    count = 0
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            console.print(f"[yellow]Skipping[/yellow] {path}: not a UTF-8 text file")
            continue
        await runtime.search.index(
            SearchableDocument(
                id=_document_id(path),
                collection_id=kb_id,
                name=path.name,
                content=content,
                file_type=path.suffix.lstrip(".") or None,
                updated_at=datetime.fromtimestamp(path.stat().st_mtime, tz=UTC),
            )
        )
        count += 1
    return count


async def _with_runtime(config: Config, fn):
    from kbsearch.server.runtime import Runtime

    runtime = Runtime(config)
    await runtime.connect()
    try:
        return await fn(runtime)
    finally:
        await runtime.close()


if __name__ == "__main__":
    main()
