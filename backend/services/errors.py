"""Error taxonomy shared by the gateways and the query pipeline."""
from typing import Any, Dict, Optional

# Provider failure kinds
TIMEOUT = "timeout"
RATE_LIMIT = "rate_limit"
AUTHENTICATION = "authentication"
API = "api"
NETWORK = "network"
MALFORMED = "malformed"


class ValidationError(ValueError):
    """Bad or missing request input. Raised before any gateway call."""


class ProviderError(Exception):
    """An external provider was unreachable, refused the call, or answered garbage."""

    provider = "provider"

    def __init__(
        self,
        message: str,
        kind: str = API,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.kind = kind
        self.details = details or {}
        super().__init__(message)

    @property
    def code(self) -> str:
        return f"{self.kind.upper()}_ERROR"

    def to_dict(self) -> Dict[str, Any]:
        """Structured error body for pre-stream failures."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {"provider": self.provider, **self.details},
        }


class EmbeddingError(ProviderError):
    provider = "embedding"


class SearchError(ProviderError):
    provider = "search"


class RerankError(ProviderError):
    provider = "rerank"


class GenerationError(ProviderError):
    provider = "generation"
