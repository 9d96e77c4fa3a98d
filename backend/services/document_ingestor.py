"""Offline ingestion: PDF → chunks → embeddings → vector store."""
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from models.chunk import Chunk, VectorPoint
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.vector_store import VectorStore, point_id_for
from config import MAX_CHUNK_CHARS

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    documents: int = 0
    chunks: int = 0
    skipped_chunks: int = 0
    tokens_used: int = 0
    failed_files: List[str] = field(default_factory=list)


class DocumentIngestor:
    """Turns PDF files into stored, embedded chunks."""

    def __init__(
        self,
        loader: DocumentLoader,
        chunking_engine: ChunkingEngine,
        embedding_model: EmbeddingModel,
        vector_store: VectorStore,
        batch_size: int = 10,
        max_chunk_chars: int = MAX_CHUNK_CHARS,
        paragraph_chunking: bool = True
    ):
        self.loader = loader
        self.chunking_engine = chunking_engine
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.batch_size = batch_size
        self.max_chunk_chars = max_chunk_chars
        self.paragraph_chunking = paragraph_chunking

    async def prepare(self, clear_existing: bool = True) -> None:
        """Make sure the collection matches the configured dimension, optionally emptying it."""
        await self.vector_store.ensure_collection()
        if clear_existing:
            logger.info("Clearing existing embeddings...")
            await self.vector_store.clear()

    def chunk_file(self, filepath: str) -> Tuple[List[Chunk], int]:
        """
        Load one PDF and build its chunks, dropping the ones too long to embed.

        Returns:
            (embeddable chunks, number of chunks skipped)
        """
        document = self.loader.load_document(filepath)
        chunks = self.chunking_engine.build(
            document.full_text,
            document.page_texts,
            document.identity,
            paragraph_chunking=self.paragraph_chunking
        )

        safe = [c for c in chunks if c.text.strip() and len(c.text) < self.max_chunk_chars]
        skipped = len(chunks) - len(safe)
        if skipped:
            logger.warning(f"Skipped {skipped} empty or oversized chunks in {document.filename}")
        return safe, skipped

    async def embed_and_store(self, chunks: List[Chunk]) -> int:
        """
        Embed chunks in batches and upsert them by deterministic point id.

        Returns:
            Embedding tokens spent
        """
        tokens = 0
        total_batches = (len(chunks) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(chunks), self.batch_size):
            batch = chunks[i:i + self.batch_size]
            batch_num = (i // self.batch_size) + 1
            logger.info(f"Processing batch {batch_num}/{total_batches} ({len(batch)} chunks)...")

            embeddings = await self.embedding_model.embed_batch([c.text for c in batch])

            points = []
            for chunk, embedding in zip(batch, embeddings):
                chunk.tokens_used = embedding.tokens
                chunk.embedding_model = self.embedding_model.model_name
                tokens += embedding.tokens
                points.append(VectorPoint(
                    point_id=point_id_for(chunk.chunk_id),
                    vector=embedding.vector,
                    payload=chunk.to_payload(),
                ))

            await self.vector_store.upsert(points)

        return tokens

    async def ingest_file(self, filepath: str, report: IngestionReport) -> None:
        chunks, skipped = self.chunk_file(filepath)
        report.skipped_chunks += skipped
        if not chunks:
            logger.warning(f"No chunks produced for {filepath}")
            return
        report.tokens_used += await self.embed_and_store(chunks)
        report.documents += 1
        report.chunks += len(chunks)
        logger.info(f"Stored {len(chunks)} chunks for {filepath}")

    async def ingest_directory(self) -> IngestionReport:
        """
        Ingest every PDF in the loader's directory.

        A failure on one file is logged and the next file is processed.
        """
        report = IngestionReport()
        files = self.loader.list_pdf_files()
        if not files:
            logger.warning(f"No PDF files found in {self.loader.docs_directory}")
            return report

        for filepath in files:
            logger.info(f"Reading PDF: {filepath}")
            try:
                await self.ingest_file(filepath, report)
            except Exception as e:
                logger.error(f"Error processing file {filepath}: {e}", exc_info=True)
                report.failed_files.append(filepath)

        return report
