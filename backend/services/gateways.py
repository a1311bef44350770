"""Contracts the query pipeline expects from its external providers.

Any adapter satisfying these interfaces can be swapped in without touching
the orchestrator.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Sequence

from models.chunk import Chunk, SearchMatch, RerankResult

DOCUMENT_MODE = "document"
QUERY_MODE = "query"


class EmbeddingGateway(ABC):
    @abstractmethod
    def embed(self, texts: Sequence[str], mode: str) -> List[List[float]]:
        """
        Embed texts, one vector per input in input order.

        Raises:
            EmbeddingError: On transport, auth, or response-shape failures
        """
        raise NotImplementedError


class SearchGateway(ABC):
    @abstractmethod
    def search(self, vector: List[float], top_k: int) -> List[SearchMatch]:
        """
        Return up to ``top_k`` stored chunks, best similarity first, with metadata.

        Raises:
            SearchError: If the index cannot be queried
        """
        raise NotImplementedError

    @abstractmethod
    def upsert(self, chunks: Sequence[Chunk]) -> None:
        raise NotImplementedError


class RerankGateway(ABC):
    @abstractmethod
    def rerank(self, query: str, documents: Sequence[str], top_n: int) -> List[RerankResult]:
        """
        Order ``documents`` by relevance to ``query``, best first.

        ``RerankResult.index`` refers positionally into ``documents``.

        Raises:
            RerankError: If the reranker cannot be reached or answers garbage
        """
        raise NotImplementedError


class TokenStream(ABC):
    """Incremental generation output. Iterating yields text deltas in order."""

    @abstractmethod
    def __iter__(self) -> Iterator[str]:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release the underlying provider connection."""
        raise NotImplementedError


class GenerationGateway(ABC):
    supports_streaming = False

    @abstractmethod
    def generate(self, messages: List[Dict[str, str]]):
        """Blocking generation. Returns an object with a ``text`` attribute."""
        raise NotImplementedError

    def generate_stream(self, messages: List[Dict[str, str]]) -> TokenStream:
        raise NotImplementedError(f"{type(self).__name__} does not support streaming")
