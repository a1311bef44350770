"""Reranker gateway backed by the Cohere rerank API."""
import time
import logging
from typing import List, Sequence
import httpx

from models.chunk import RerankResult
from services.errors import RerankError, TIMEOUT, RATE_LIMIT, AUTHENTICATION, API, NETWORK, MALFORMED
from services.gateways import RerankGateway

logger = logging.getLogger(__name__)


class Reranker(RerankGateway):
    """Second-pass relevance scoring of retrieved passages."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        api_url: str = "https://api.cohere.com/v2",
        timeout: float = 30.0
    ):
        if not api_key:
            raise ValueError("COHERE_API_KEY is required")

        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.api_url = f"{api_url.rstrip('/')}/rerank"

        logger.info(f"Initialized Reranker with model: {model_name}")

    def rerank(self, query: str, documents: Sequence[str], top_n: int) -> List[RerankResult]:
        """
        Score documents against the query and return the best ``top_n``.

        Args:
            query: User question
            documents: Candidate passage texts
            top_n: Maximum number of results

        Returns:
            RerankResult list, best first; ``index`` points into ``documents``

        Raises:
            ValueError: If documents is empty or top_n is not positive
            RerankError: If the API fails or returns a malformed payload
        """
        if not documents:
            raise ValueError("Documents list cannot be empty")
        if top_n <= 0:
            raise ValueError("top_n must be positive")

        payload = {
            "model": self.model_name,
            "query": query,
            "documents": list(documents),
            "top_n": min(top_n, len(documents)),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        start_time = time.time()
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.error(f"Rerank request timed out after {self.timeout}s")
            raise RerankError(f"Request timeout after {self.timeout}s", kind=TIMEOUT)
        except httpx.RequestError as e:
            logger.error(f"Rerank network error: {e}")
            raise RerankError(f"Network error: {str(e)}", kind=NETWORK)

        if response.status_code == 429:
            raise RerankError("Rate limit exceeded. Please try again later.", kind=RATE_LIMIT)
        if response.status_code == 401:
            raise RerankError("Invalid API key", kind=AUTHENTICATION)
        if response.status_code != 200:
            error_msg = f"Rerank request failed with status {response.status_code}: {response.text}"
            logger.error(error_msg)
            raise RerankError(error_msg, kind=API, details={"status_code": response.status_code})

        try:
            results = [
                RerankResult(index=int(item["index"]), relevance_score=float(item["relevance_score"]))
                for item in response.json()["results"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise RerankError(f"Malformed rerank response: {e}", kind=MALFORMED)

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Reranked {len(documents)} documents into {len(results)} in {latency_ms}ms")
        return results
