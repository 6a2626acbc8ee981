"""
docsearch - CLI Entry Point
----------------------------
Typer commands over the search engine and the JSON reference store.

Usage:
    python -m docsearch.main index                      # Import data/docs/, embed pending docs
    python -m docsearch.main index --doc <doc-id>       # Re-index one document now
    python -m docsearch.main pending                    # Documents waiting for embeddings
    python -m docsearch.main search "Q3 budget plan"    # Hybrid search
    python -m docsearch.main search "..." --mode vector # Vector only
    python -m docsearch.main similar <doc-id>           # Documents like this one
    python -m docsearch.main status                     # Embedded vs total documents
    python -m docsearch.main chunks <doc-id>            # Preview how a document is chunked
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docsearch.config import EngineConfig, load_config
from docsearch.embedding.pipeline import DocumentIndexer
from docsearch.errors import ConfigurationError, DocSearchError, DocumentNotFoundError
from docsearch.schemas import SearchMode, SearchResult
from docsearch.serving.engine import SearchEngine, SearchRequest
from docsearch.storage.memory import InMemoryStore
from docsearch.utils.helpers import truncate_text
from docsearch.utils.logger import setup_logger

app = typer.Typer(
    name="docsearch",
    help="Hybrid semantic search over a document corpus",
    add_completion=False,
)
console = Console()

UNAVAILABLE_NOTICE = "semantic search unavailable, showing keyword results"


# --- Helpers ------------------------------------------------------------------

def _bootstrap(config_path: Optional[str], store_path: Optional[str]) -> tuple[EngineConfig, InMemoryStore]:
    load_dotenv()
    try:
        cfg = load_config(config_path)
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    setup_logger(cfg.logging.level, cfg.logging.file)
    if store_path:
        cfg.storage.store_path = store_path
    return cfg, InMemoryStore.load(cfg.storage.store_path)


def _print_results(results: list[SearchResult], title: str) -> None:
    if not results:
        console.print("[yellow]No results.[/yellow]")
        return

    table = Table(
        "No.", "Kind", "Title", "Section", "Score", "Excerpt",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold dim",
        title=title,
    )
    for i, hit in enumerate(results, start=1):
        table.add_row(
            str(i),
            hit.kind.value,
            truncate_text(hit.title, 45),
            hit.section or "",
            f"{hit.similarity:.3f}",
            truncate_text(hit.content.replace("\n", " "), 70),
        )
    console.print(table)


def _print_json(payload) -> None:
    console.print_json(json.dumps(payload, default=str))


def _index_one(indexer: DocumentIndexer, doc_id: str, doc_store: InMemoryStore, store_path: str) -> None:
    try:
        with console.status(f"[cyan]Embedding {doc_id}...[/cyan]"):
            result = asyncio.run(indexer.index_by_id(doc_id))
    except DocumentNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if result.error:
        console.print(f"[red]{doc_id}: {result.error}[/red]")
        raise typer.Exit(1)

    doc_store.save(store_path)
    if result.skipped:
        console.print(f"[yellow]{doc_id}: no content to embed, skipped[/yellow]")
        return
    console.print(
        f"[green][OK] {doc_id} embedded | {result.chunks} chunk(s) | "
        f"{result.tokens_used} tokens[/green]"
    )


# --- Commands -----------------------------------------------------------------

@app.command()
def index(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
    docs_dir: Optional[str] = typer.Option(
        None, "--docs-dir", help="Import *.json documents from this directory first"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Embed at most N pending documents"),
    doc_id: Optional[str] = typer.Option(
        None, "--doc", help="Re-index this one document now, pending or not"
    ),
) -> None:
    """
    Embed every document whose stored embedding is missing or stale.

    \b
    Steps:
      1. Import document files (--docs-dir, or storage.docs_dir when it exists)
      2. Embed pending documents (or only --doc); chunk and embed long ones
      3. Save the store
    """
    cfg, doc_store = _bootstrap(config, store)

    source_dir = docs_dir or cfg.storage.docs_dir
    if docs_dir or Path(source_dir).exists():
        try:
            imported = doc_store.import_directory(source_dir)
        except FileNotFoundError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(1)
        console.print(f"[green][OK] {imported} document(s) imported from {source_dir}[/green]")

    engine = SearchEngine.from_config(cfg, doc_store)
    try:
        indexer = engine.indexer()
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if doc_id:
        _index_one(indexer, doc_id, doc_store, cfg.storage.store_path)
        return

    with console.status("[cyan]Embedding pending documents...[/cyan]"):
        summary = asyncio.run(indexer.index_pending(limit))
    doc_store.save(cfg.storage.store_path)

    usage = engine.embedder.usage_summary()
    border = "green" if not summary.failed else "yellow"
    console.print(
        Panel(
            f"  Processed   : {summary.processed}\n"
            f"  Embedded    : {summary.embedded}\n"
            f"  Skipped     : {summary.skipped}\n"
            f"  Failed      : {summary.failed}\n"
            f"  Chunks      : {summary.chunks}\n"
            f"  Tokens used : {usage['total_tokens_used']:,}\n"
            f"  Cost        : ${usage['estimated_cost_usd']:.4f} USD",
            title="[bold]Indexing complete[/bold]",
            border_style=border,
            box=box.ROUNDED,
            expand=False,
        )
    )
    for failure in summary.failures:
        console.print(f"[red]  {failure.document_id}: {failure.error}[/red]")
    if summary.failed:
        raise typer.Exit(1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Natural-language query"),
    mode: SearchMode = typer.Option(SearchMode.HYBRID, "--mode", "-m", help="vector | keyword | hybrid"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum results"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Restrict to one scope id"),
    no_chunks: bool = typer.Option(False, "--no-chunks", help="Document-level vectors only"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
    json_out: bool = typer.Option(False, "--json", help="Print the response as JSON"),
) -> None:
    """Search the corpus."""
    cfg, doc_store = _bootstrap(config, store)
    engine = SearchEngine.from_config(cfg, doc_store)

    async def _run():
        if mode != SearchMode.KEYWORD:
            availability = await engine.availability(scope)
            if not availability.available:
                return True, await engine.search(
                    SearchRequest(query, scope_id=scope, limit=limit, mode=SearchMode.KEYWORD)
                )
        return False, await engine.search(
            SearchRequest(
                query,
                scope_id=scope,
                limit=limit,
                mode=mode,
                include_chunks=False if no_chunks else None,
            )
        )

    try:
        degraded, response = asyncio.run(_run())
    except DocSearchError as exc:
        console.print(f"[red]Search failed: {exc}[/red]")
        raise typer.Exit(1)

    if json_out:
        payload = response.to_dict()
        payload["degraded"] = degraded
        _print_json(payload)
        return

    if degraded:
        console.print(f"[yellow]{UNAVAILABLE_NOTICE}[/yellow]")
    _print_results(response.results, f"{response.mode.value} | {query!r}")
    console.print(f"[dim]{len(response.results)} result(s) in {response.latency_ms:.0f}ms[/dim]")


@app.command()
def similar(
    doc_id: str = typer.Argument(..., help="Source document id"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum results"),
    min_similarity: Optional[float] = typer.Option(None, "--min-similarity", help="Cosine threshold"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
    json_out: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """List documents similar to DOC_ID."""
    cfg, doc_store = _bootstrap(config, store)
    engine = SearchEngine.from_config(cfg, doc_store)

    try:
        results = asyncio.run(
            engine.find_similar(doc_id, limit=limit, min_similarity=min_similarity)
        )
    except DocumentNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if json_out:
        _print_json([r.model_dump(mode="json") for r in results])
        return
    _print_results(results, f"similar to {doc_id}")


@app.command()
def status(
    scope: Optional[str] = typer.Option(None, "--scope", help="Restrict to one scope id"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
) -> None:
    """Show how much of the corpus is embedded."""
    cfg, doc_store = _bootstrap(config, store)
    engine = SearchEngine.from_config(cfg, doc_store)
    availability = asyncio.run(engine.availability(scope))

    colour = "green" if availability.available else "yellow"
    console.print()
    console.print("[bold]Search status[/bold]")
    console.print(f"  Store     : [dim]{cfg.storage.store_path}[/dim]")
    console.print(f"  Model     : {cfg.embedding.model}")
    console.print(f"  Embedder  : {'configured' if engine.embedder else '[red]no API key[/red]'}")
    console.print(f"  Documents : {availability.total_count}")
    console.print(f"  Embedded  : [{colour}]{availability.embedded_count}[/{colour}]")
    console.print(
        f"  Semantic  : [{colour}]{'available' if availability.available else 'unavailable'}[/{colour}]"
    )
    console.print()


@app.command()
def pending(
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum documents listed"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
    json_out: bool = typer.Option(False, "--json", help="Print the list as JSON"),
) -> None:
    """List documents whose embedding is missing or stale."""
    cfg, doc_store = _bootstrap(config, store)
    engine = SearchEngine.from_config(cfg, doc_store)
    docs = asyncio.run(engine.pending_documents(limit))

    if json_out:
        _print_json({"count": len(docs), "docs": [{"id": d.id, "title": d.title} for d in docs]})
        return
    if not docs:
        console.print("[green]Nothing pending.[/green]")
        return

    table = Table("Id", "Title", "Embedded", box=box.SIMPLE, header_style="bold dim")
    for doc in docs:
        table.add_row(doc.id, truncate_text(doc.title, 60), "stale" if doc.embedding else "never")
    console.print(table)
    console.print(f"[dim]{len(docs)} document(s) pending[/dim]")


@app.command()
def chunks(
    doc_id: str = typer.Argument(..., help="Document id"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    store: Optional[str] = typer.Option(None, "--store", help="Store file (overrides config)"),
) -> None:
    """Preview how DOC_ID is split into chunks (no embedding calls)."""
    cfg, doc_store = _bootstrap(config, store)
    engine = SearchEngine.from_config(cfg, doc_store)

    doc = asyncio.run(doc_store.get_document(doc_id))
    if doc is None:
        console.print(f"[red]Document not found: {doc_id}[/red]")
        raise typer.Exit(1)

    doc_chunks = engine.chunker.chunk(doc)
    logger.debug(f"[CLI] Previewed {len(doc_chunks)} chunk(s) for {doc_id}")

    table = Table(
        "Idx", "Start", "End", "Len", "Section", "Code", "Preview",
        box=box.SIMPLE,
        header_style="bold dim",
        title=f"{doc.title} ({len(doc.text):,} chars)",
    )
    for chunk in doc_chunks:
        table.add_row(
            str(chunk.chunk_index),
            str(chunk.start_offset),
            str(chunk.end_offset),
            str(len(chunk.content)),
            chunk.metadata.section or "",
            "yes" if chunk.metadata.is_code_block else "",
            truncate_text(chunk.content.replace("\n", " "), 60),
        )
    console.print(table)
    needs = engine.chunker.needs_chunking(doc)
    console.print(
        f"[dim]{len(doc_chunks)} chunk(s) | "
        f"{'indexed as chunks' if needs else 'indexed as one document vector'}[/dim]"
    )


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
