# codeseek/cli_actions.py
"""
Reusable CLI actions.

The main CLI (`codeseek.cli`) parses options and calls these functions.
Each action builds its backends from `Settings`, runs the async library
code with `asyncio.run` and renders the outcome with rich.

This keeps the CLI thin and makes behaviors testable.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .config import Settings
from .embeddings.base import Embedder
from .embeddings.gemini import GeminiEmbedder
from .embeddings.ollama import OllamaEmbedder
from .embeddings.openai import OpenAIEmbedder
from .embeddings.voyageai import VoyageAIEmbedder
from .errors import CodeseekError
from .rag.search import SearchContext, SemanticSearchResult
from .vectordb.milvus_rest import MilvusRestVectorStore

T = TypeVar("T")

console = Console()
logger = logging.getLogger(__name__)

EMBEDDERS = ("openai", "voyageai", "gemini", "ollama", "sbert")


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich (WARNING by default, DEBUG with --verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
    )


def _make_embedder(settings: Settings) -> Embedder:
    """
    Create an embedding backend from settings.

    Args:
        settings: Loaded settings; `embedding.provider` picks the backend.

    Returns:
        Embedder instance.

    Raises:
        typer.BadParameter: If the provider is unknown.
        ConfigurationError: If a required api key is missing.
    """
    opts = settings.embedding
    provider = (opts.provider or "").strip().lower()
    if provider == "openai":
        kwargs: dict = {"api_key": opts.api_key, "base_url": opts.base_url}
        if opts.model:
            kwargs["model"] = opts.model
        return OpenAIEmbedder(**kwargs)
    if provider == "voyageai":
        kwargs = {"api_key": opts.api_key}
        if opts.model:
            kwargs["model"] = opts.model
        if opts.base_url:
            kwargs["base_url"] = opts.base_url
        # Queries and documents are embedded differently by Voyage.
        kwargs["input_type"] = "query"
        return VoyageAIEmbedder(**kwargs)
    if provider == "gemini":
        kwargs = {"api_key": opts.api_key, "base_url": opts.base_url, "output_dimensionality": opts.dimension}
        if opts.model:
            kwargs["model"] = opts.model
        return GeminiEmbedder(**kwargs)
    if provider == "ollama":
        kwargs = {"host": opts.host, "dimension": opts.dimension}
        if opts.model:
            kwargs["model"] = opts.model
        return OllamaEmbedder(**kwargs)
    if provider == "sbert":
        from .embeddings.sbert import SentenceTransformersEmbedder

        return SentenceTransformersEmbedder(opts.model) if opts.model else SentenceTransformersEmbedder()
    raise typer.BadParameter(f"Unknown embedder: {opts.provider} (expected one of {', '.join(EMBEDDERS)})")


def _make_store(settings: Settings) -> MilvusRestVectorStore:
    """Create the REST vector store from settings (raises ConfigurationError when address/token are missing)."""
    s = settings.store
    return MilvusRestVectorStore(address=s.address or "", token=s.token or "", database=s.database, timeout=s.timeout)


async def _close(store: MilvusRestVectorStore, embedder: Optional[Embedder] = None) -> None:
    store.close()
    if embedder is not None:
        await embedder.close()


def _run(action: Callable[[], Awaitable[T]]) -> T:
    """
    Run an async action, turning library errors into a clean CLI exit.

    Raises:
        typer.Exit: With code 1 on any CodeseekError.
    """
    try:
        return asyncio.run(action())
    except CodeseekError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


def render_results(query: str, results: List[SemanticSearchResult], as_json: bool = False) -> None:
    """Print search results as a rich table, or as JSON with --json."""
    if as_json:
        console.print_json(json.dumps([r.to_dict() for r in results]))
        return

    if not results:
        console.print("[yellow]No results.[/yellow] Is the codebase indexed under this name?")
        return

    table = Table(title=f"Results for: {query}", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Lang")
    table.add_column("Preview")
    for i, r in enumerate(results, 1):
        preview = " ".join(r.content.split())[:80]
        table.add_row(str(i), f"{r.score:.4f}", f"{r.relative_path}:{r.start_line}-{r.end_line}", r.language, preview)
    console.print(table)


def do_search(
    settings: Settings,
    query: str,
    top_k: Optional[int] = None,
    threshold: Optional[float] = None,
    filter_expr: Optional[str] = None,
    hybrid: Optional[bool] = None,
    name: Optional[str] = None,
    as_json: bool = False,
) -> List[SemanticSearchResult]:
    """
    Run a semantic search and print the results.

    Args:
        settings: Loaded settings.
        query: Natural-language query.
        top_k: Max results (default from settings).
        threshold: Similarity cutoff for dense search (default from settings).
        filter_expr: Store filter expression.
        hybrid: Force hybrid (True) or dense (False); None uses settings/env.
        name: Context name (default from settings).
        as_json: Print JSON instead of a table.

    Returns:
        The results that were printed.
    """
    defaults = settings.search

    async def action() -> List[SemanticSearchResult]:
        store = _make_store(settings)
        embedder: Optional[Embedder] = None
        try:
            embedder = _make_embedder(settings)
            ctx = SearchContext(
                embedder=embedder,
                vector_store=store,
                name=name or settings.name,
                hybrid_mode=hybrid if hybrid is not None else defaults.hybrid_mode,
                rrf_k=defaults.rrf_k,
            )
            return await ctx.semantic_search(
                query,
                top_k=top_k if top_k is not None else defaults.top_k,
                threshold=threshold if threshold is not None else defaults.threshold,
                filter_expr=filter_expr,
            )
        finally:
            await _close(store, embedder)

    if as_json:
        results = _run(action)
    else:
        with Progress(SpinnerColumn(), TextColumn("Searching..."), TimeElapsedColumn(), console=console, transient=True) as p:
            p.add_task("search", total=None)
            results = _run(action)
    render_results(query, results, as_json=as_json)
    return results


def do_status(settings: Settings, name: Optional[str] = None, hybrid: Optional[bool] = None) -> bool:
    """
    Show whether the index for a context exists.

    Returns:
        True if the collection exists.
    """

    async def action() -> Any:
        store = _make_store(settings)
        embedder: Optional[Embedder] = None
        try:
            embedder = _make_embedder(settings)
            ctx = SearchContext(
                embedder=embedder,
                vector_store=store,
                name=name or settings.name,
                hybrid_mode=hybrid if hybrid is not None else settings.search.hybrid_mode,
            )
            return ctx, await ctx.has_index()
        finally:
            await _close(store, embedder)

    ctx, exists = _run(action)
    console.print(f"Context: {ctx.name}")
    console.print(f"- mode: {'hybrid' if ctx.hybrid_mode else 'dense'}")
    console.print(f"- collection: {ctx.collection_name}")
    console.print(f"- embedder: {ctx.embedder.get_provider()} ({ctx.embedder.model})")
    if exists:
        console.print("- index: [green]present[/green]")
    else:
        console.print("- index: [yellow]missing[/yellow]")
    return exists


def do_collections(settings: Settings) -> List[str]:
    """List collections in the vector store."""

    async def action() -> List[str]:
        store = _make_store(settings)
        try:
            return await store.list_collections()
        finally:
            store.close()

    names = _run(action)
    if not names:
        console.print("[dim]No collections.[/dim]")
        return names
    table = Table(show_header=True, header_style="bold")
    table.add_column("Collection")
    for n in sorted(names):
        table.add_row(n)
    console.print(table)
    return names


def do_drop(settings: Settings, collection: str) -> None:
    """Drop a collection from the vector store."""

    async def action() -> None:
        store = _make_store(settings)
        try:
            await store.drop_collection(collection)
        finally:
            store.close()

    _run(action)
    console.print(f"[bold yellow]Dropped collection[/bold yellow] {collection}")
