"""
Document ingestion script for the PDF RAG chat service.

This script:
1. Prepares the chat history table and the vector table
2. Clears existing chunks (unless --keep-existing)
3. Loads every PDF from the docs directory
4. Builds document, page and paragraph chunks
5. Generates embeddings using HuggingFace API
6. Stores everything in Supabase pgvector

Usage:
    python ingest_documents.py [--docs-dir DIR] [--keep-existing] [--no-paragraphs]
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from config import DOCS_DIRECTORY, LOG_LEVEL, PROVIDER_MIN_DELAY_MS, SKIP_TRAILING_PAGES
from logger import setup_logging
from services.chat_history_store import ChatHistoryStore
from services.chunking_engine import ChunkingEngine
from services.document_ingestor import DocumentIngestor, IngestionReport
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.rate_limiter import RateLimiter
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest PDF documents into the vector store")
    parser.add_argument(
        "--docs-dir",
        default=DOCS_DIRECTORY,
        help=f"Directory containing the PDF files (default: {DOCS_DIRECTORY})"
    )
    parser.add_argument(
        "--keep-existing",
        action="store_true",
        help="Do not clear stored chunks before ingesting"
    )
    parser.add_argument(
        "--no-paragraphs",
        action="store_true",
        help="Only build document and page chunks"
    )
    parser.add_argument(
        "--skip-trailing-pages",
        type=int,
        default=SKIP_TRAILING_PAGES,
        help="Number of template pages to drop from the end of every PDF"
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> IngestionReport:
    """Main ingestion process."""
    logger.info("Starting document ingestion")

    rate_limiter = RateLimiter(PROVIDER_MIN_DELAY_MS)
    embedding_model = EmbeddingModel(rate_limiter)
    vector_store = await VectorStore.connect()
    chat_store = await ChatHistoryStore.connect()

    loader = DocumentLoader(
        docs_directory=args.docs_dir,
        skip_trailing_pages=args.skip_trailing_pages
    )
    ingestor = DocumentIngestor(
        loader,
        ChunkingEngine(),
        embedding_model,
        vector_store,
        paragraph_chunking=not args.no_paragraphs
    )

    await chat_store.setup_schema()
    await ingestor.prepare(clear_existing=not args.keep_existing)

    logger.info("Warming up embedding model (may take 15-20 seconds on first run)...")
    await embedding_model.warmup()

    report = await ingestor.ingest_directory()

    final_count = await vector_store.count()
    logger.info(
        "Ingestion complete",
        extra={
            "documents": report.documents,
            "chunks": report.chunks,
            "skipped_chunks": report.skipped_chunks,
            "embedding_tokens": report.tokens_used,
            "failed_files": report.failed_files,
            "stored_points": final_count,
        }
    )
    return report


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging(LOG_LEVEL)
    args = parse_args(argv)

    try:
        report = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Ingestion failed: {str(e)}", exc_info=True)
        return 1

    if report.documents == 0:
        logger.error(f"No documents ingested. Check that {args.docs_dir} exists and contains PDFs")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
