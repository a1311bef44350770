"""Ingestion service: chunk, embed and index a document, then record it."""
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from models.chunk import Chunk
from models.document import HistoryEntry, IngestResult, TEXT
from services.chunking_engine import ChunkingEngine
from services.errors import EmbeddingError, ValidationError, MALFORMED
from services.gateways import EmbeddingGateway, SearchGateway, DOCUMENT_MODE
from services.history_store import HistoryStore

logger = logging.getLogger(__name__)


class IngestionService:
    """Turns raw document text into stored, searchable chunks."""

    def __init__(
        self,
        chunking_engine: ChunkingEngine,
        embedding_model: EmbeddingGateway,
        vector_store: SearchGateway,
        history_store: HistoryStore,
        embed_batch_size: int = 10,
        upsert_batch_size: int = 50
    ):
        self.chunking_engine = chunking_engine
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.history_store = history_store
        self.embed_batch_size = embed_batch_size
        self.upsert_batch_size = upsert_batch_size

    def ingest(self, text: str, source_name: Optional[str] = None, doc_type: str = TEXT) -> IngestResult:
        """
        Index one document.

        Args:
            text: Full document text
            source_name: Name stored with every chunk and in the history
            doc_type: "PDF", "File" or "Text"

        Returns:
            IngestResult with the chunk count and the recorded history entry

        Raises:
            ValidationError: If the document has no text
            EmbeddingError: If embedding fails or returns the wrong number of vectors
            SearchError: If the chunks cannot be written to the index
        """
        if not text or not text.strip():
            raise ValidationError("No text content found")

        source = source_name or "Unknown"
        texts = self.chunking_engine.split_text(text)
        logger.info(f"Processing {len(texts)} chunks from {source}...")

        vectors = self._embed_chunks(texts)

        timestamp_ms = int(time.time() * 1000)
        chunks = [
            Chunk(
                chunk_id=f"{source_name or 'doc'}-{timestamp_ms}-{position}",
                text=chunk_text,
                source=source,
                position=position,
                token_estimate=round(len(chunk_text) / 4),
                vector=vector
            )
            for position, (chunk_text, vector) in enumerate(zip(texts, vectors))
        ]

        for i in range(0, len(chunks), self.upsert_batch_size):
            self.vector_store.upsert(chunks[i:i + self.upsert_batch_size])

        entry = HistoryEntry(
            id=str(timestamp_ms),
            name=source,
            type=doc_type,
            date=datetime.now(timezone.utc).isoformat(),
            chunk_count=len(chunks)
        )
        self.history_store.append(entry)

        logger.info(f"Indexed {len(chunks)} chunks from {source}")
        return IngestResult(source_name=source, chunk_count=len(chunks), entry=entry)

    def _embed_chunks(self, texts: List[str]) -> List[List[float]]:
        """Embed chunk texts in document mode, one batch at a time."""
        embed_inputs = [t.replace("\n", " ") for t in texts]
        total_batches = (len(embed_inputs) + self.embed_batch_size - 1) // self.embed_batch_size

        vectors: List[List[float]] = []
        for i in range(0, len(embed_inputs), self.embed_batch_size):
            batch = embed_inputs[i:i + self.embed_batch_size]
            logger.info(f"Embedding batch {i // self.embed_batch_size + 1}/{total_batches} (Size: {len(batch)})")
            vectors.extend(self.embedding_model.embed(batch, DOCUMENT_MODE))

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} vectors, got {len(vectors)}",
                kind=MALFORMED
            )
        return vectors
