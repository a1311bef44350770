"""Vector search gateway using Supabase pgvector."""
import logging
from typing import List, Sequence
import httpx
from supabase import create_client, Client, ClientOptions

from models.chunk import Chunk, SearchMatch
from services.errors import SearchError, TIMEOUT, NETWORK, API
from services.gateways import SearchGateway

logger = logging.getLogger(__name__)


class VectorStore(SearchGateway):
    """Store chunk vectors and run similarity search through Supabase pgvector."""

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        table_name: str = "document_chunks",
        match_function: str = "match_chunks",
        timeout: float = 30.0
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table holding chunks
            match_function: Name of the similarity-search RPC
            timeout: PostgREST request timeout in seconds

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required")

        self.table_name = table_name
        self.match_function = match_function

        self.client: Client = create_client(
            supabase_url,
            supabase_key,
            options=ClientOptions(postgrest_client_timeout=timeout)
        )

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def upsert(self, chunks: Sequence[Chunk]) -> None:
        """
        Write chunks and their vectors to the store.

        Raises:
            ValueError: If chunks is empty or a chunk has no vector
            SearchError: If the database operation fails
        """
        if not chunks:
            raise ValueError("Chunks list cannot be empty")

        records = []
        for chunk in chunks:
            if chunk.vector is None:
                raise ValueError(f"Chunk {chunk.chunk_id} has no vector")
            records.append({
                "chunk_id": chunk.chunk_id,
                "text": chunk.text,
                "source": chunk.source,
                "position": chunk.position,
                "token_estimate": chunk.token_estimate,
                "embedding": chunk.vector
            })

        self._execute(
            lambda: self.client.table(self.table_name).upsert(records).execute(),
            "upsert chunks"
        )
        logger.info(f"Upserted {len(records)} chunks into {self.table_name}")

    def search(self, vector: List[float], top_k: int) -> List[SearchMatch]:
        """
        Find the chunks most similar to ``vector`` using cosine similarity.

        Args:
            vector: Query embedding
            top_k: Number of chunks to retrieve

        Returns:
            SearchMatch list, best similarity first

        Raises:
            ValueError: If vector is empty or top_k is invalid
            SearchError: If the database operation fails
        """
        if not vector:
            raise ValueError("Query vector cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        # match_chunks(query_embedding vector(1024), match_count int) returns
        # chunk_id, text, source, position, token_estimate and
        # similarity = 1 - (embedding <=> query_embedding), ordered by distance.
        response = self._execute(
            lambda: self.client.rpc(
                self.match_function,
                {"query_embedding": vector, "match_count": top_k}
            ).execute(),
            "search vector store"
        )

        matches = []
        for row in response.data or []:
            chunk = Chunk(
                chunk_id=row["chunk_id"],
                text=row.get("text") or "",
                source=row.get("source") or "Unknown",
                position=row.get("position", 0),
                token_estimate=row.get("token_estimate", 0)
            )
            matches.append(SearchMatch(chunk=chunk, similarity_score=float(row.get("similarity", 0.0))))

        logger.debug(f"Found {len(matches)} chunks for query")
        return matches

    def clear(self) -> None:
        """Delete every chunk. Used when reindexing from scratch."""
        self._execute(
            lambda: self.client.table(self.table_name).delete().neq("chunk_id", "").execute(),
            "clear vector store"
        )
        logger.info("Cleared all chunks from vector store")

    def count(self) -> int:
        """Get the total number of chunks in the vector store."""
        response = self._execute(
            lambda: self.client.table(self.table_name).select("chunk_id", count="exact").execute(),
            "count chunks"
        )
        return response.count if response.count is not None else 0

    def _execute(self, operation, action: str):
        try:
            return operation()
        except httpx.TimeoutException as e:
            logger.error(f"Timed out trying to {action}: {e}")
            raise SearchError(f"Failed to {action}: request timed out", kind=TIMEOUT)
        except httpx.RequestError as e:
            logger.error(f"Network error trying to {action}: {e}")
            raise SearchError(f"Failed to {action}: {str(e)}", kind=NETWORK)
        except Exception as e:
            error_msg = f"Failed to {action}: {str(e)}"
            logger.error(error_msg)
            raise SearchError(error_msg, kind=API, details={"error_type": type(e).__name__})
