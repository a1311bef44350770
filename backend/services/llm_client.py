"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import List, Dict, Iterator
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, APIConnectionError
import logging

from services.errors import GenerationError, TIMEOUT, RATE_LIMIT, AUTHENTICATION, API, NETWORK
from services.gateways import GenerationGateway, TokenStream

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


def _to_generation_error(e: Exception, model: str, start_time: float) -> GenerationError:
    """Map a Groq SDK exception onto the provider error taxonomy."""
    latency_ms = int((time.time() - start_time) * 1000)
    details = {"model": model, "latency_ms": latency_ms, "original_error": str(e)}

    # APITimeoutError subclasses APIConnectionError, so it must be checked first
    if isinstance(e, RateLimitError):
        details["retry_after"] = 60
        error = GenerationError("Rate limit exceeded. Please try again in a few moments.", RATE_LIMIT, details)
    elif isinstance(e, AuthenticationError):
        error = GenerationError("Authentication failed. Please check your API key.", AUTHENTICATION, details)
    elif isinstance(e, APITimeoutError):
        error = GenerationError("Request timed out. Please try again.", TIMEOUT, details)
    elif isinstance(e, APIConnectionError):
        error = GenerationError(f"Could not reach Groq API: {str(e)}", NETWORK, details)
    elif isinstance(e, APIError):
        error = GenerationError(f"Groq API error: {str(e)}", API, details)
    else:
        details["error_type"] = type(e).__name__
        error = GenerationError(f"Unexpected error during generation: {str(e)}", API, details)

    logger.error(
        f"Generation failed: model={model}, latency={latency_ms}ms, error={e}",
        exc_info=True,
        extra={"error_code": error.code, "error_details": error.details}
    )
    return error


class GroqTokenStream(TokenStream):
    """Text deltas from a Groq streaming chat completion."""

    def __init__(self, stream, model: str, start_time: float):
        self._stream = stream
        self.model = model
        self.start_time = start_time
        self.tokens_output = 0

    def __iter__(self) -> Iterator[str]:
        try:
            for chunk in self._stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    self.tokens_output += 1
                    yield content
        except Exception as e:
            raise _to_generation_error(e, self.model, self.start_time) from e

        latency_ms = int((time.time() - self.start_time) * 1000)
        logger.info(f"Streamed response: model={self.model}, deltas={self.tokens_output}, latency={latency_ms}ms")

    def close(self) -> None:
        self._stream.close()


class LLMClient(GenerationGateway):
    """Client for interfacing with Groq API for text generation."""

    supports_streaming = True

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout: float = 120.0,
        max_retries: int = 2
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key
            model: Chat model name
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            timeout: Per-request timeout in seconds
            max_retries: SDK retries for a request that has not produced output yet
        """
        if not api_key:
            raise ValueError("GROQ_API_KEY must be provided")

        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        self.client = Groq(api_key=self.api_key, timeout=timeout, max_retries=max_retries)
        logger.info("LLMClient initialized successfully")

    def generate(self, messages: List[Dict[str, str]]) -> LLMResponse:
        """
        Generate a complete response in one call.

        Args:
            messages: Chat messages, system first

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            GenerationError: Structured error with kind, message, and details
        """
        start_time = time.time()

        try:
            logger.debug(f"Generating response with model: {self.model}")

            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            raise _to_generation_error(e, self.model, start_time) from e

        latency_ms = int((time.time() - start_time) * 1000)

        text = response.choices[0].message.content or ""
        tokens_input = response.usage.prompt_tokens
        tokens_output = response.usage.completion_tokens

        logger.info(
            f"Generated response: model={self.model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=self.model
        )

    def generate_stream(self, messages: List[Dict[str, str]]) -> GroqTokenStream:
        """
        Open a streaming completion.

        The request is sent before this returns, so connection and auth
        failures surface here rather than mid-stream.

        Raises:
            GenerationError: If the stream cannot be opened
        """
        start_time = time.time()

        try:
            stream = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stream=True
            )
        except Exception as e:
            raise _to_generation_error(e, self.model, start_time) from e

        return GroqTokenStream(stream, self.model, start_time)
