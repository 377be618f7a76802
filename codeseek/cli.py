"""Codeseek CLI.

Commands:
  - search: semantic search over an indexed codebase
  - status: show whether the index for a context exists
  - collections: list collections in the vector store
  - drop: delete a collection

Configuration comes from `.codeseek/settings.json`, a `.env` file and the
environment (MILVUS_ADDRESS, MILVUS_TOKEN, CODESEEK_EMBEDDER, ...); options
given here override both.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from .cli_actions import do_collections, do_drop, do_search, do_status, setup_logging
from .config import Settings, load_settings

app = typer.Typer(add_completion=False, help="Codeseek: semantic and hybrid search over indexed code.")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


@app.callback()
def main_callback(
    ctx: typer.Context,
    root: Path = typer.Option(Path("."), "--root", help="Project root holding .codeseek/settings.json and .env."),
    embedder: Optional[str] = typer.Option(None, "--embedder", help="Embedding backend: openai|voyageai|gemini|ollama|sbert"),
    embed_model: Optional[str] = typer.Option(None, "--embed-model", help="Embedding model name."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Load settings once for every command."""
    setup_logging(verbose)
    settings = load_settings(root)
    if embedder:
        settings.embedding.provider = embedder.strip().lower()
    if embed_model:
        settings.embedding.model = embed_model
    ctx.obj = {"settings": settings}


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Natural-language query."),
    top_k: Optional[int] = typer.Option(None, "--top-k", min=1, help="Maximum number of results."),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Similarity cutoff (dense search only)."),
    filter_expr: Optional[str] = typer.Option(None, "--filter", help='Store filter, e.g. fileExtension in [".py"]'),
    hybrid: Optional[bool] = typer.Option(None, "--hybrid/--dense", help="Force hybrid or dense search."),
    name: Optional[str] = typer.Option(None, "--name", help="Context name (collection suffix)."),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON."),
):
    """Search an indexed codebase."""
    do_search(
        _settings(ctx),
        query,
        top_k=top_k,
        threshold=threshold,
        filter_expr=filter_expr,
        hybrid=hybrid,
        name=name,
        as_json=as_json,
    )


@app.command()
def status(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(None, "--name", help="Context name."),
    hybrid: Optional[bool] = typer.Option(None, "--hybrid/--dense", help="Check the hybrid or dense collection."),
):
    """Show whether the index for a context exists."""
    do_status(_settings(ctx), name=name, hybrid=hybrid)


@app.command()
def collections(ctx: typer.Context):
    """List collections in the vector store."""
    do_collections(_settings(ctx))


@app.command()
def drop(
    ctx: typer.Context,
    collection: str = typer.Argument(..., help="Collection to delete."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Drop a collection (all indexed chunks in it are lost)."""
    if not yes:
        typer.confirm(f"Drop collection '{collection}'?", abort=True)
    do_drop(_settings(ctx), collection)


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
