"""Chunk data models."""
from dataclasses import dataclass
from typing import Optional, List


@dataclass
class Chunk:
    """Represents a stored document chunk."""
    chunk_id: str  # Format: "{source}-{epoch_ms}-{position}"
    text: str
    source: str
    position: int
    token_estimate: int = 0
    vector: Optional[List[float]] = None


@dataclass
class SearchMatch:
    """Chunk returned by vector similarity search."""
    chunk: Chunk
    similarity_score: float


@dataclass
class RerankResult:
    """One reranker verdict: a position in the submitted documents and its score."""
    index: int
    relevance_score: float


@dataclass
class RerankedChunk:
    """Search match after the second-pass relevance ordering."""
    match: SearchMatch
    relevance_score: float
    rank: int  # 1-based, doubles as the citation id

    @property
    def text(self) -> str:
        return self.match.chunk.text

    @property
    def source(self) -> str:
        return self.match.chunk.source
