import asyncio
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from typer import Typer, Option
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import ENV_API_KEY, resolve_db_path
from .credentials import default_resolver
from .embeddings import EmbeddingClient
from .errors import RagError
from .indexing import EmbeddingPipeline
from .logging_setup import configure_logging
from .models import (
    Category,
    DOCUMENT_CATEGORIES,
    HybridSearchOptions,
    RagContextOptions,
    SearchOptions,
)
from .search import RagContextAssembler, SemanticSearchEngine
from .storage import DuckDBStorage

app = Typer(help="Chunk, embed, and search reference documents for content generation.")
console = Console()

DbPathOption = Annotated[
    Optional[str],
    Option("--db-path", help="DuckDB file (defaults to $CONTENT_RAG_DB_PATH)."),
]
UserOption = Annotated[str, Option("--user", "-u", help="Owning user id.")]
DocumentOption = Annotated[int, Option("--doc", "-d", help="Document id.")]
CategoryOption = Annotated[
    Optional[list[str]],
    Option("--category", "-c", help="Restrict to a category (repeatable)."),
]


def _open_storage(db_path: str | None) -> DuckDBStorage:
    return DuckDBStorage(resolve_db_path(db_path))


def _categories(values: list[str] | None) -> list[Category] | None:
    if not values:
        return None
    unknown = [value for value in values if value not in DOCUMENT_CATEGORIES]
    if unknown:
        raise typer.BadParameter(
            f"Unknown categories {unknown}; expected one of {', '.join(DOCUMENT_CATEGORIES)}"
        )
    return values  # type: ignore[return-value]


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/] {exc}")
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: Annotated[
        Optional[str], Option("--log-level", help="info or debug (defaults to $LOG_LEVEL).")
    ] = None,
) -> None:
    configure_logging(log_level)


@app.command()
def add(
    user: UserOption,
    file: Annotated[Path, Option("--file", "-f", exists=True, dir_okay=False, help="Text file to import.")],
    title: Annotated[Optional[str], Option("--title", help="Defaults to the file name.")] = None,
    category: Annotated[str, Option("--category", "-c")] = "general",
    db_path: DbPathOption = None,
) -> None:
    """Store a document so it can be embedded."""
    _categories([category])
    storage = _open_storage(db_path)
    try:
        document_id = storage.create_document(
            user_id=user,
            title=title or file.name,
            content=file.read_text(encoding="utf-8"),
            category=category,
        )
    finally:
        storage.close()
    console.print(f"[bold green]Created document[/] {document_id}")


@app.command()
def embed(
    user: UserOption,
    doc: DocumentOption,
    force: Annotated[bool, Option("--force", help="Embed again even if already embedded.")] = False,
    db_path: DbPathOption = None,
) -> None:
    """Chunk and embed a stored document."""
    storage = _open_storage(db_path)
    try:
        pipeline = EmbeddingPipeline(storage, EmbeddingClient())
        result = asyncio.run(pipeline.embed_document(document_id=doc, user_id=user, force=force))
    except RagError as exc:
        _fail(exc)
    finally:
        storage.close()

    if result.already_embedded:
        console.print(
            f"Document {doc} is already embedded ({result.chunks_processed} chunks, {result.model})."
        )
    else:
        console.print(
            f"[bold green]Embedded[/] document {doc}: {result.chunks_processed} chunks with {result.model}"
        )


@app.command()
def reembed(
    user: UserOption,
    doc: DocumentOption,
    db_path: DbPathOption = None,
) -> None:
    """Re-chunk and re-embed a document, replacing its stored embeddings."""
    storage = _open_storage(db_path)
    try:
        pipeline = EmbeddingPipeline(storage, EmbeddingClient())
        result = asyncio.run(pipeline.reembed_document(document_id=doc, user_id=user))
    finally:
        storage.close()

    if not result.success:
        console.print(f"[bold red]Re-embedding failed:[/] {result.error}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Re-embedded[/] document {doc}: {result.chunks_processed} chunks")


@app.command()
def search(
    user: UserOption,
    query: Annotated[str, Option("--query", "-q")],
    category: CategoryOption = None,
    threshold: Annotated[float, Option("--threshold")] = 0.7,
    limit: Annotated[int, Option("--limit")] = 10,
    hybrid: Annotated[bool, Option("--hybrid", help="Blend in keyword overlap.")] = False,
    db_path: DbPathOption = None,
) -> None:
    """Search a user's embedded documents."""
    categories = _categories(category)
    base: dict[str, object] = {"threshold": threshold, "limit": limit}
    if categories is not None:
        base["categories"] = categories

    storage = _open_storage(db_path)
    try:
        engine = SemanticSearchEngine(storage, EmbeddingClient())
        if hybrid:
            results = asyncio.run(
                engine.hybrid_search(user_id=user, query=query, options=HybridSearchOptions(**base))
            )
        else:
            results = asyncio.run(
                engine.search(user_id=user, query=query, options=SearchOptions(**base))
            )
    except RagError as exc:
        _fail(exc)
    finally:
        storage.close()

    if not results:
        console.print("No matching chunks.")
        return

    table = Table(title=f"Results for {query!r}")
    table.add_column("Score", justify="right")
    table.add_column("Document")
    table.add_column("Category")
    table.add_column("Chunk", justify="right")
    table.add_column("Text")
    for result in results:
        table.add_row(
            f"{result.score:.3f}",
            f"{result.document_title} (#{result.document_id})",
            result.category,
            str(result.chunk_index),
            result.text[:80].replace("\n", " "),
        )
    console.print(table)


@app.command()
def context(
    user: UserOption,
    query: Annotated[str, Option("--query", "-q")],
    category: CategoryOption = None,
    max_tokens: Annotated[int, Option("--max-tokens")] = 4000,
    filtered: Annotated[
        bool,
        Option("--filtered", help="Cap chunks per document, drop near-duplicates, cite documents."),
    ] = False,
    hybrid: Annotated[bool, Option("--hybrid", help="With --filtered, blend in keyword overlap.")] = False,
    db_path: DbPathOption = None,
) -> None:
    """Assemble RAG context for a prompt."""
    categories = _categories(category)
    storage = _open_storage(db_path)
    try:
        assembler = RagContextAssembler(SemanticSearchEngine(storage, EmbeddingClient()))
        if filtered:
            assembled = asyncio.run(
                assembler.assemble_rag_context(
                    user_id=user,
                    query=query,
                    options=RagContextOptions(
                        categories=categories,
                        max_tokens=max_tokens,
                        hybrid=hybrid,
                    ),
                )
            )
        else:
            rag = asyncio.run(
                assembler.get_rag_context(
                    user_id=user,
                    query=query,
                    categories=categories,
                    max_tokens=max_tokens,
                )
            )
    except RagError as exc:
        _fail(exc)
    finally:
        storage.close()

    if filtered:
        console.print(
            Panel(
                assembled.context or "(no context)",
                title=f"Context (~{assembled.tokens_used} tokens, {assembled.chunks_included} chunks)",
                title_align="left",
                border_style="bold green",
            )
        )
        if assembled.truncated:
            console.print("[yellow]Some relevant chunks did not fit the token budget.[/]")
        for doc_source in assembled.sources:
            console.print(
                f"- {doc_source.title} (#{doc_source.id}, {doc_source.category}) "
                f"score={doc_source.score:.3f} chunks={doc_source.chunk_count}"
            )
        return

    console.print(
        Panel(
            rag.context or "(no context)",
            title=f"Context (~{rag.total_tokens} tokens)",
            title_align="left",
            border_style="bold green",
        )
    )
    for source in rag.sources:
        console.print(f"- {source.title} (#{source.id}) score={source.score:.3f}")


@app.command()
def stats(user: UserOption, db_path: DbPathOption = None) -> None:
    """Show embedding status counts and per-document progress."""
    storage = _open_storage(db_path)
    try:
        counts = storage.embedding_stats(user_id=user)
        documents = storage.list_documents(user_id=user)
    finally:
        storage.close()

    console.print(
        f"total={counts['total']} embedded={counts['embedded']} "
        f"pending={counts['pending']} processing={counts['processing']}"
    )
    # the CLI has no key decryptor, so only the environment key is reachable
    if default_resolver().is_configured():
        console.print(f"Embedding key: configured ({ENV_API_KEY})")
    else:
        console.print(f"[yellow]Embedding key: not configured; set {ENV_API_KEY}[/]")
    table = Table()
    table.add_column("Id", justify="right")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Model")
    for document in documents:
        table.add_row(
            str(document.id),
            document.title,
            document.category,
            document.embedding_status,
            f"{document.embedding_progress}/{document.chunks_count}",
            document.embedding_model or "-",
        )
    console.print(table)


@app.command()
def delete(
    user: UserOption,
    doc: DocumentOption,
    hard: Annotated[bool, Option("--hard", help="Remove the row and its embeddings.")] = False,
    db_path: DbPathOption = None,
) -> None:
    """Soft-delete a document (or remove it with --hard)."""
    storage = _open_storage(db_path)
    try:
        if hard:
            removed = storage.delete_document(document_id=doc, user_id=user)
        else:
            removed = storage.soft_delete_document(document_id=doc, user_id=user)
    finally:
        storage.close()

    if not removed:
        console.print(f"[bold red]Document {doc} not found[/]")
        raise typer.Exit(code=1)
    console.print(f"Deleted document {doc}")
