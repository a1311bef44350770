"""Embedding gateway backed by the Cohere embed API."""
import time
import logging
from typing import List, Sequence
import httpx
import numpy as np

from services.errors import EmbeddingError, TIMEOUT, RATE_LIMIT, AUTHENTICATION, API, NETWORK, MALFORMED
from services.gateways import EmbeddingGateway, DOCUMENT_MODE, QUERY_MODE

logger = logging.getLogger(__name__)

INPUT_TYPES = {
    DOCUMENT_MODE: "search_document",
    QUERY_MODE: "search_query",
}


class EmbeddingModel(EmbeddingGateway):
    """Wrapper for the Cohere embedding endpoint."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        dimension: int,
        api_url: str = "https://api.cohere.com/v2",
        max_retries: int = 3,
        initial_delay: float = 1.0,
        timeout: float = 60.0
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Cohere API key
            model_name: Model identifier (e.g. embed-english-v3.0)
            dimension: Expected vector length
            api_url: Base URL of the Cohere v2 API
            max_retries: Maximum attempts for 503s, timeouts and network errors
            initial_delay: Initial delay in seconds for exponential backoff
            timeout: Per-request timeout in seconds
        """
        if not api_key:
            raise ValueError("COHERE_API_KEY is required")

        self.api_key = api_key
        self.model_name = model_name
        self.dimension = dimension
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.api_url = f"{api_url.rstrip('/')}/embed"

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def embed(self, texts: Sequence[str], mode: str) -> List[List[float]]:
        """
        Generate embeddings for texts in a single API call.

        Args:
            texts: Texts to embed
            mode: "document" at indexing time, "query" at question time

        Returns:
            One vector per input, in input order

        Raises:
            ValueError: If texts is empty or mode is unknown
            EmbeddingError: If the API fails or returns a malformed payload
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")
        if mode not in INPUT_TYPES:
            raise ValueError(f"Unknown embedding mode: {mode}")

        payload = {
            "model": self.model_name,
            "texts": list(texts),
            "input_type": INPUT_TYPES[mode],
            "embedding_types": ["float"],
        }
        body = self._post_with_retry(payload)
        return self._parse_vectors(body, expected=len(texts))

    def embed_query(self, text: str) -> List[float]:
        """Embed a single question in query mode."""
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        return self.embed([text], QUERY_MODE)[0]

    def _parse_vectors(self, body: dict, expected: int) -> List[List[float]]:
        try:
            vectors = body["embeddings"]["float"]
            matrix = np.asarray(vectors, dtype=float)
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Malformed embedding response: {e}",
                kind=MALFORMED,
                details={"model": self.model_name}
            )

        if matrix.ndim != 2 or matrix.shape != (expected, self.dimension):
            raise EmbeddingError(
                f"Expected {expected} vectors of dimension {self.dimension}, got shape {matrix.shape}",
                kind=MALFORMED,
                details={"model": self.model_name}
            )

        return matrix.tolist()

    def _post_with_retry(self, payload: dict) -> dict:
        """
        POST to the embed endpoint with exponential backoff.

        Only 503s, timeouts and network errors are retried; embedding is
        idempotent so a repeated call is safe.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        delay = self.initial_delay
        last_error = None
        last_kind = NETWORK

        for attempt in range(self.max_retries):
            try:
                start_time = time.time()

                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.api_url, headers=headers, json=payload)

                elapsed = time.time() - start_time

                if response.status_code == 503:
                    last_error = "Embedding service unavailable (503)"
                    last_kind = API
                    logger.warning(
                        f"{last_error} on attempt {attempt + 1}/{self.max_retries}. Retrying in {delay}s..."
                    )
                    if attempt < self.max_retries - 1:
                        time.sleep(delay)
                        delay = min(delay * 2, 30.0)
                    continue

                if response.status_code == 429:
                    logger.error("Rate limit exceeded for Cohere embed API")
                    raise EmbeddingError("Rate limit exceeded. Please try again later.", kind=RATE_LIMIT)

                if response.status_code == 401:
                    logger.error("Authentication failed for Cohere embed API")
                    raise EmbeddingError("Invalid API key", kind=AUTHENTICATION)

                if response.status_code != 200:
                    error_msg = f"Embed request failed with status {response.status_code}: {response.text}"
                    logger.error(error_msg)
                    raise EmbeddingError(error_msg, kind=API, details={"status_code": response.status_code})

                logger.debug(f"Generated embeddings for {len(payload['texts'])} texts in {elapsed:.2f}s")

                try:
                    return response.json()
                except ValueError as e:
                    raise EmbeddingError(f"Embedding response is not JSON: {e}", kind=MALFORMED)

            except httpx.TimeoutException:
                last_error = f"Request timeout after {self.timeout}s"
                last_kind = TIMEOUT
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

                if attempt < self.max_retries - 1:
                    time.sleep(delay)
                    delay = min(delay * 2, 30.0)

            except httpx.RequestError as e:
                last_error = f"Network error: {str(e)}"
                last_kind = NETWORK
                logger.error(f"{last_error} on attempt {attempt + 1}/{self.max_retries}")

                if attempt < self.max_retries - 1:
                    time.sleep(delay)
                    delay = min(delay * 2, 30.0)

        error_msg = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_error}"
        logger.error(error_msg)
        raise EmbeddingError(error_msg, kind=last_kind, details={"attempts": self.max_retries})
