from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .chat.llm import LLMError, OllamaChatClient
from .config import Settings
from .errors import ConceptGraphError, InputTooLargeError, StoreError
from .logging_utils import configure_logging
from .service import KnowledgeGraph

T = TypeVar("T")

app = typer.Typer(add_completion=False, help="ConceptGraph: local knowledge-graph RAG over your documents.")
console = Console()

DB_OPTION = typer.Option(None, "--db", help="SQLite graph path (defaults to CONCEPTGRAPH_DB_PATH)")


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level (defaults to CONCEPTGRAPH_LOG_LEVEL)"),
):
    configure_logging(level=log_level or Settings().log_level)


def _settings(db: Path | None) -> Settings:
    settings = Settings()
    if db is not None:
        settings = replace(settings, db_path=str(db))
    return settings


def _run(db: Path | None, fn: Callable[[KnowledgeGraph], Awaitable[T]]) -> T:
    async def go() -> T:
        kg = KnowledgeGraph.from_settings(_settings(db))
        try:
            return await fn(kg)
        finally:
            await kg.close()

    try:
        return asyncio.run(go())
    except InputTooLargeError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=3)
    except StoreError as e:
        console.print(f"Graph store error: {e}", style="red", markup=False)
        raise typer.Exit(code=4)
    except ConceptGraphError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=1)


@app.command()
def ingest(
    file: list[Path] = typer.Option([], "--file", "-f", help="File to ingest (.txt, .md, .html, .pdf); repeatable"),
    url: list[str] = typer.Option([], "--url", "-u", help="URL to fetch and ingest; repeatable"),
    clear: bool = typer.Option(False, "--clear", help="Clear the graph before ingesting"),
    db: Path | None = DB_OPTION,
):
    """Ingest files and URLs into the knowledge graph."""
    if not file and not url:
        raise typer.BadParameter("Provide at least one --file or --url")

    results = _run(db, lambda kg: kg.ingest_sources(files=file, urls=url, clear=clear))

    table = Table(title="Ingestion")
    table.add_column("source")
    table.add_column("status")
    table.add_column("concepts", justify="right")
    table.add_column("size", justify="right")
    table.add_column("detail")
    for r in results:
        if r.ok and r.summary is not None:
            table.add_row(
                Text(r.source),
                Text("ok", style="green"),
                Text(str(r.summary.concepts)),
                Text(f"{r.summary.size / 1024:.1f}KB"),
                Text(r.summary.strategy),
            )
        else:
            table.add_row(Text(r.source), Text(r.error_kind or "error", style="red"), Text("-"), Text("-"), Text(r.error or ""))
    console.print(table)

    if not any(r.ok for r in results):
        raise typer.Exit(code=1)


@app.command()
def query(
    question: str = typer.Argument(...),
    mode: str = typer.Option("auto", "--mode", help="auto, local or global"),
    db: Path | None = DB_OPTION,
):
    """Ask a question against the knowledge graph."""
    if mode not in {"auto", "local", "global"}:
        raise typer.BadParameter("--mode must be one of: auto, local, global")

    ans = _run(db, lambda kg: kg.query(question, mode))

    # Excerpts are user text; keep rich markup off.
    console.print(ans.text, markup=False)
    console.print(f"\nmode: {ans.mode}", markup=False, style="dim")
    if ans.concepts:
        console.print("concepts: " + ", ".join(c.name for c in ans.concepts[:10]), markup=False, style="dim")
    for name, linked in ans.connected.items():
        if linked:
            console.print(f"{name} connected to: {', '.join(linked)}", markup=False, style="dim")
    for h in ans.documents:
        console.print(f"- {h.document.name} (relevance={h.relevance})", markup=False)


@app.command()
def communities(
    limit: int = typer.Option(10, help="Max communities to show"),
    detect: bool = typer.Option(True, "--detect/--no-detect", help="Recompute community labels first"),
    db: Path | None = DB_OPTION,
):
    """Detect communities and list the largest ones."""

    async def go(kg: KnowledgeGraph):
        count = await kg.detect_communities() if detect else None
        return count, await kg.list_communities(limit=int(limit))

    count, summaries = _run(db, go)
    if count is not None:
        console.print(f"Detected {count} communities", markup=False)

    table = Table(title="Communities")
    table.add_column("community")
    table.add_column("size", justify="right")
    table.add_column("examples")
    for c in summaries:
        table.add_row(Text(c.name), Text(str(c.size)), Text(", ".join(c.members)))
    console.print(table)


@app.command()
def stats(db: Path | None = DB_OPTION):
    """Show graph stats."""
    res: dict[str, Any] = _run(db, lambda kg: kg.stats())

    table = Table(title="ConceptGraph Stats")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Documents", str(res["documents"]))
    table.add_row("Concepts", str(res["concepts"]))
    table.add_row("Entities", str(res["entities"]))
    table.add_row("CONTAINS edges", str(res["contains"]))
    table.add_row("RELATED_TO edges", str(res["relationships"]))
    table.add_row("Communities", str(res["communities"]))
    table.add_row("Total size", f"{res['total_size'] / 1024 / 1024:.2f}MB")
    console.print(table)

    if res["top"]:
        t2 = Table(title="Top Concepts")
        t2.add_column("name")
        t2.add_column("type")
        t2.add_column("frequency", justify="right")
        for c in res["top"]:
            t2.add_row(Text(c["name"]), Text(c["type"] or "-"), Text(str(c["frequency"])))
        console.print(t2)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    db: Path | None = DB_OPTION,
):
    """Delete every document, concept and edge."""
    if not yes and not typer.confirm("Clear the whole knowledge graph?"):
        raise typer.Exit(code=1)
    _run(db, lambda kg: kg.clear())
    console.print("Knowledge graph cleared.", style="green")


@app.command()
def status(db: Path | None = DB_OPTION):
    """Check the graph store and (when enrichment is on) Ollama."""
    settings = _settings(db)
    ok = True

    console.print("Graph store:")
    try:
        res = _run(db, lambda kg: kg.stats(top=0))
        console.print(f"- {settings.db_path}: {res['documents']} documents, {res['concepts'] + res['entities']} nodes", style="green")
    except typer.Exit:
        ok = False

    console.print("\nEnrichment:")
    if not settings.enrich:
        console.print("- Disabled (set CONCEPTGRAPH_ENRICH=1 to use Ollama).", style="dim")
    else:
        client = OllamaChatClient(base_url=settings.ollama_base_url, model=settings.ollama_model)
        try:
            models = asyncio.run(client.ping())
        except LLMError as e:
            console.print(f"- {e}", style="red", markup=False)
            console.print("  Fix: start Ollama (`ollama serve`) then retry.", style="yellow")
            ok = False
        else:
            if settings.ollama_model in models:
                console.print(f"- Model OK: {settings.ollama_model}", style="green")
            else:
                console.print(f"- Missing model: {settings.ollama_model}", style="yellow")
                console.print(f"  Fix: `ollama pull {settings.ollama_model}`", style="yellow")
                ok = False

    if not ok:
        raise typer.Exit(code=1)


@app.command()
def serve(
    db: Path | None = DB_OPTION,
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the HTTP API (FastAPI)."""
    try:
        import uvicorn
    except ImportError:
        console.print("Missing web dependencies. Install: `pip install -e '.[web]'`", style="red")
        raise typer.Exit(code=2)

    from .web.server import create_app

    app_ = create_app(settings=_settings(db))
    uvicorn.run(app_, host=host, port=int(port), log_config=None)


if __name__ == "__main__":
    app()
