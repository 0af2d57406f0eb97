import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from clioindex.core.logging import setup_logging, get_logger
from clioindex.core.errors import ClioIndexError

# Initialize logging before anything else
setup_logging()
logger = get_logger(__name__)

app = typer.Typer(help="Index extracted document text and search it.")


def _get_engine():
    from clioindex.config import settings
    from clioindex.utils.db import create_db_engine
    return create_db_engine(settings.database_url)


def _get_embedder():
    from clioindex.config import settings
    from clioindex.utils.embeddings import EmbeddingService
    return EmbeddingService(settings.embedding_model)


def _get_store():
    from clioindex.rag import VectorStore
    return VectorStore(_get_engine())


def _fail(error: Exception):
    logger.error("command_failed", error=str(error), error_type=type(error).__name__)
    print(f"Error: {error}")
    raise typer.Exit(code=1)


@app.command()
def version():
    """Show version."""
    from clioindex import __version__
    print(f"ClioIndex v{__version__}")


@app.command()
def index(
    files: List[Path] = typer.Argument(..., help="Page files (.txt with form feeds between pages, or .json)"),
    title: Optional[str] = typer.Option(None, help="Document title (defaults to the file name)"),
    author: Optional[str] = typer.Option(None, help="Author"),
    year: Optional[str] = typer.Option(None, help="Publication year"),
    bibtex_key: Optional[str] = typer.Option(None, help="BibTeX citation key"),
    semantic: bool = typer.Option(False, "--semantic", help="Use semantic chunking"),
):
    """Index one or more documents."""
    from clioindex.config import settings
    from clioindex.core.indexing import DocumentInput, create_default_pipeline
    from clioindex.schema import ChunkingStrategy, merge_with_defaults
    from clioindex.utils.pages import load_pages

    try:
        docs = []
        for path in files:
            docs.append(
                DocumentInput(
                    pages=load_pages(path),
                    title=title if title and len(files) == 1 else path.stem,
                    author=author,
                    year=year,
                    bibtex_key=bibtex_key if len(files) == 1 else None,
                    file_path=str(path.resolve()),
                )
            )
    except (OSError, ValueError) as e:
        _fail(e)

    config = settings.indexing_config()
    if semantic:
        config = merge_with_defaults(config, {"chunking_strategy": ChunkingStrategy.SEMANTIC})
    pipeline = create_default_pipeline(settings, engine=_get_engine(), embedder=_get_embedder(), config=config)

    def show_progress(i, progress):
        logger.debug("indexing_progress", file_index=i, stage=progress.stage.value, progress=progress.progress)

    async def _run():
        return await pipeline.index_many(docs, on_progress=show_progress)

    results = asyncio.run(_run())

    for result in results:
        print(f"Indexed: {result.title} ({result.document_id})")
        print(f"  Chunks: {result.chunks_created} (filtered {result.chunks_filtered}, duplicates {result.duplicates_removed})")
        print(f"  Similar documents: {result.similarities}")
    if len(results) < len(docs):
        print(f"Failed: {len(docs) - len(results)} of {len(docs)} documents")
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    k: int = typer.Option(10, "-k", help="Number of results"),
    document_id: Optional[List[str]] = typer.Option(None, "--document-id", help="Restrict to documents"),
    dense_only: bool = typer.Option(False, "--dense-only", help="Skip keyword fusion"),
):
    """Search indexed chunks."""
    from clioindex.config import settings
    from clioindex.rag import HybridRetriever

    store = _get_store()
    retriever = HybridRetriever.create(
        store,
        _get_embedder(),
        config=settings.hybrid_config(),
        dense_strategy=settings.dense_strategy,
    )

    try:
        results = asyncio.run(
            retriever.retrieve(query, k=k, document_ids=document_id or None, use_hybrid=False if dense_only else None)
        )
    except ClioIndexError as e:
        _fail(e)

    if not results:
        print("No results.")
        return

    for rank, result in enumerate(results, 1):
        source = result.document.display_string if result.document else result.chunk.document_id
        preview = " ".join(result.chunk.content.split())[:160]
        print(f"{rank:>2}. [{result.similarity:.4f}] {source}, p. {result.chunk.page_number}")
        print(f"    {preview}")


@app.command()
def stats():
    """Show database statistics."""
    statistics = _get_store().get_statistics()

    print(f"\nDatabase: {statistics.database_url}")
    print("-" * 40)
    print(f"Documents: {statistics.document_count}")
    print(f"Chunks: {statistics.chunk_count}")
    print(f"Embeddings: {statistics.embedding_count}")
    print(f"Similarity edges: {statistics.similarity_count}")
    print(f"Embedding dimension: {statistics.embedding_dimension or 'N/A'}")
    print("-" * 40)


@app.command()
def verify():
    """Check store integrity."""
    report = _get_store().verify_integrity()

    print(f"Total chunks: {report.total_chunks}")
    print(f"Orphaned chunks: {report.orphaned_chunks}")
    print(f"Chunks without embedding: {report.chunks_without_embedding}")
    print(f"Dimension mismatches: {report.dimension_mismatches}")
    if not report.ok:
        print("Integrity issues found.")
        raise typer.Exit(code=1)
    print("OK")


@app.command()
def delete(document_id: str = typer.Argument(..., help="Document id")):
    """Delete a document with its chunks and similarity edges."""
    from clioindex.core.errors import DocumentNotFoundError

    if not _get_store().delete_document(document_id):
        _fail(DocumentNotFoundError(document_id))
    print(f"Deleted {document_id}")


@app.command()
def clean_orphans():
    """Remove chunks whose document no longer exists."""
    removed = _get_store().clean_orphaned_chunks()
    print(f"Removed {removed} orphaned chunks")


@app.command()
def similar(
    document_id: str = typer.Argument(..., help="Document id"),
    limit: int = typer.Option(5, help="Max results"),
):
    """List documents similar to a document."""
    from clioindex.core.errors import DocumentNotFoundError

    store = _get_store()
    document = store.get_document(document_id)
    if document is None:
        _fail(DocumentNotFoundError(document_id))

    neighbours = store.get_similar_documents(document_id, limit=limit)
    print(f"Similar to {document.display_string}:")
    if not neighbours:
        print("  (none)")
    for other, score in neighbours:
        print(f"  [{score:.3f}] {other.display_string} ({other.id})")


if __name__ == "__main__":
    app()
