"""Retrieval engine: query embedding, vector search and reranking."""
import logging
from typing import List

from models.chunk import SearchMatch, RerankedChunk
from services.errors import EmbeddingError, RerankError, MALFORMED
from services.gateways import EmbeddingGateway, SearchGateway, RerankGateway, QUERY_MODE

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Turn a question into a relevance-ordered list of citable chunks."""

    def __init__(
        self,
        embedding_model: EmbeddingGateway,
        vector_store: SearchGateway,
        reranker: RerankGateway,
        search_top_k: int = 15,
        rerank_top_n: int = 5
    ):
        """
        Initialize the retrieval engine.

        Args:
            embedding_model: Gateway used to embed the question
            vector_store: Gateway used for similarity search
            reranker: Gateway used for second-pass ordering
            search_top_k: Candidates fetched from the index (over-fetch)
            rerank_top_n: Chunks kept after reranking
        """
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.reranker = reranker
        self.search_top_k = search_top_k
        self.rerank_top_n = rerank_top_n
        logger.info("Initialized RetrievalEngine")

    def retrieve(self, question: str) -> List[SearchMatch]:
        """
        Embed the question and fetch candidate chunks that carry text.

        Matches with empty text cannot be cited, so they are dropped here and
        never reach the reranker.

        Raises:
            EmbeddingError: If the embedding gateway fails or returns no vector
            SearchError: If the vector index cannot be queried
        """
        logger.debug(f"Embedding query: {question[:100]}...")
        vectors = self.embedding_model.embed([question], QUERY_MODE)
        if not vectors or not vectors[0]:
            raise EmbeddingError("Embedding gateway returned no vector for the query", kind=MALFORMED)

        logger.debug(f"Searching for top {self.search_top_k} chunks")
        matches = self.vector_store.search(vectors[0], top_k=self.search_top_k)

        valid = [match for match in matches if match.chunk.text and match.chunk.text.strip()]
        if len(valid) < len(matches):
            logger.info(f"Dropped {len(matches) - len(valid)} matches without text")

        logger.info(f"Retrieved {len(valid)} candidate chunks")
        return valid

    def rerank(self, question: str, matches: List[SearchMatch]) -> List[RerankedChunk]:
        """
        Reorder candidates by relevance and keep the best ``rerank_top_n``.

        Reranker indices are mapped back onto ``matches`` positionally; ranks
        are assigned 1..N in the order the reranker returned them.

        Raises:
            RerankError: If the reranker fails or returns an index outside ``matches``
        """
        if not matches:
            return []

        documents = [match.chunk.text for match in matches]
        results = self.reranker.rerank(question, documents, top_n=self.rerank_top_n)

        reranked = []
        for result in results[:self.rerank_top_n]:
            if not 0 <= result.index < len(matches):
                raise RerankError(
                    f"Reranker returned index {result.index} for {len(matches)} documents",
                    kind=MALFORMED
                )
            reranked.append(RerankedChunk(
                match=matches[result.index],
                relevance_score=result.relevance_score,
                rank=len(reranked) + 1
            ))

        if reranked:
            logger.info(
                f"Reranked {len(matches)} candidates into {len(reranked)} "
                f"(top score: {reranked[0].relevance_score:.3f})"
            )
        return reranked
