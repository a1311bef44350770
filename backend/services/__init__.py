"""Services for the Citation RAG query service."""
from .errors import ValidationError, ProviderError, EmbeddingError, SearchError, RerankError, GenerationError
from .gateways import EmbeddingGateway, SearchGateway, RerankGateway, GenerationGateway, TokenStream
from .document_loader import DocumentLoader
from .chunking_engine import ChunkingEngine
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore
from .reranker import Reranker
from .llm_client import LLMClient, LLMResponse
from .retrieval_engine import RetrievalEngine
from .query_orchestrator import QueryOrchestrator, QueryResult
from .stream_protocol import StreamDecoder, encode_stream
from .history_store import HistoryStore
from .ingestion_service import IngestionService

__all__ = ['ValidationError', 'ProviderError', 'EmbeddingError', 'SearchError', 'RerankError', 'GenerationError', 'EmbeddingGateway', 'SearchGateway', 'RerankGateway', 'GenerationGateway', 'TokenStream', 'DocumentLoader', 'ChunkingEngine', 'EmbeddingModel', 'VectorStore', 'Reranker', 'LLMClient', 'LLMResponse', 'RetrievalEngine', 'QueryOrchestrator', 'QueryResult', 'StreamDecoder', 'encode_stream', 'HistoryStore', 'IngestionService']
