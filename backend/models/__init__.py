"""Data models for the Citation RAG query service."""
from .chunk import Chunk, SearchMatch, RerankResult, RerankedChunk
from .citation import Citation
from .conversation import ConversationTurn
from .document import HistoryEntry, IngestResult
from .api import QueryRequest, QueryResponse, CitationModel, TurnModel, IngestResponse, HistoryEntryModel

__all__ = [
    "Chunk",
    "SearchMatch",
    "RerankResult",
    "RerankedChunk",
    "Citation",
    "ConversationTurn",
    "HistoryEntry",
    "IngestResult",
    "QueryRequest",
    "QueryResponse",
    "CitationModel",
    "TurnModel",
    "IngestResponse",
    "HistoryEntryModel",
]
