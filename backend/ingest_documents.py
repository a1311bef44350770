"""
Document Ingestion Script for the Citation RAG query service.

This script:
1. Optionally clears existing chunks from Supabase
2. Loads all PDF/TXT/MD files from a directory
3. Splits each document into overlapping chunks
4. Embeds chunks with Cohere (document mode)
5. Stores vectors in Supabase pgvector and records the ingest history

Usage:
    python ingest_documents.py ./docs [--clear]
"""
import sys
import argparse
import logging
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from config import load_settings
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.history_store import HistoryStore
from services.ingestion_service import IngestionService
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Index a directory of documents")
    parser.add_argument("docs_dir", help="Directory containing PDF, TXT or MD files")
    parser.add_argument("--clear", action="store_true", help="Delete all stored chunks first")
    return parser.parse_args(argv)


def main(argv=None):
    """Main ingestion process."""
    args = parse_args(argv)

    try:
        logger.info("=" * 60)
        logger.info("Starting document ingestion")
        logger.info("=" * 60)

        settings = load_settings()

        embedding_model = EmbeddingModel(
            api_key=settings.cohere_api_key,
            model_name=settings.embedding_model,
            dimension=settings.embedding_dim,
            api_url=settings.cohere_api_url,
            timeout=settings.embedding_timeout
        )
        vector_store = VectorStore(
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
            table_name=settings.chunks_table,
            match_function=settings.match_function,
            timeout=settings.search_timeout
        )
        history_store = HistoryStore(settings.supabase_url, settings.supabase_key, settings.history_table)
        service = IngestionService(
            ChunkingEngine(settings.chunk_size, settings.chunk_overlap),
            embedding_model,
            vector_store,
            history_store,
            embed_batch_size=settings.embed_batch_size,
            upsert_batch_size=settings.upsert_batch_size
        )
        logger.info("✓ Services initialized")

        if args.clear:
            logger.info(f"Clearing {vector_store.count()} existing chunks...")
            vector_store.clear()

        documents = DocumentLoader().load_directory(args.docs_dir)
        if not documents:
            logger.error(f"No documents found in {args.docs_dir}")
            sys.exit(1)

        total_chunks = 0
        for document in documents:
            result = service.ingest(document.text, document.name, document.doc_type)
            total_chunks += result.chunk_count
            logger.info(f"  ✓ {result.message}")

        logger.info("=" * 60)
        logger.info("INGESTION COMPLETE!")
        logger.info(f"Documents processed: {len(documents)}")
        logger.info(f"Total chunks created: {total_chunks}")
        logger.info(f"Chunks in database: {vector_store.count()}")
        logger.info("=" * 60)

    except KeyboardInterrupt:
        logger.warning("\nIngestion interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"\nIngestion failed: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
