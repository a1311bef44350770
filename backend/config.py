"""Configuration management for the Citation RAG query service."""
import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
COHERE_API_KEY = os.getenv("COHERE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Provider Configuration
COHERE_API_URL = "https://api.cohere.com/v2"
EMBEDDING_MODEL = "embed-english-v3.0"
EMBEDDING_DIM = 1024  # Cohere v3 dimension
RERANK_MODEL = "rerank-english-v3.0"
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama-3.3-70b-versatile")
GENERATION_TEMPERATURE = 0.1
GENERATION_MAX_TOKENS = 1024

# Storage Configuration
CHUNKS_TABLE = os.getenv("CHUNKS_TABLE", "document_chunks")
MATCH_FUNCTION = "match_chunks"
HISTORY_TABLE = os.getenv("HISTORY_TABLE", "ingest_history")

# Chunking Configuration
CHUNK_SIZE = 4000  # characters
CHUNK_OVERLAP = 400  # characters
EMBED_BATCH_SIZE = 10
UPSERT_BATCH_SIZE = 50

# Retrieval Configuration
SEARCH_TOP_K = 15  # over-fetch so the reranker has candidates to choose from
RERANK_TOP_N = 5

# Timeouts (seconds)
EMBEDDING_TIMEOUT_SECONDS = float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "60"))
SEARCH_TIMEOUT_SECONDS = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "30"))
RERANK_TIMEOUT_SECONDS = float(os.getenv("RERANK_TIMEOUT_SECONDS", "30"))
GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "120"))
GROQ_MAX_RETRIES = int(os.getenv("GROQ_MAX_RETRIES", "2"))

# Conversation Configuration
MULTI_TURN = "multi_turn"
SINGLE_TURN = "single_turn"
CONVERSATION_MODE = os.getenv("CONVERSATION_MODE", MULTI_TURN)

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@dataclass
class Settings:
    """Explicit configuration handed to every gateway at startup."""
    groq_api_key: Optional[str] = None
    cohere_api_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    cohere_api_url: str = COHERE_API_URL
    embedding_model: str = EMBEDDING_MODEL
    embedding_dim: int = EMBEDDING_DIM
    rerank_model: str = RERANK_MODEL
    generation_model: str = GENERATION_MODEL
    generation_temperature: float = GENERATION_TEMPERATURE
    generation_max_tokens: int = GENERATION_MAX_TOKENS

    chunks_table: str = CHUNKS_TABLE
    match_function: str = MATCH_FUNCTION
    history_table: str = HISTORY_TABLE

    chunk_size: int = CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    embed_batch_size: int = EMBED_BATCH_SIZE
    upsert_batch_size: int = UPSERT_BATCH_SIZE

    search_top_k: int = SEARCH_TOP_K
    rerank_top_n: int = RERANK_TOP_N

    embedding_timeout: float = EMBEDDING_TIMEOUT_SECONDS
    search_timeout: float = SEARCH_TIMEOUT_SECONDS
    rerank_timeout: float = RERANK_TIMEOUT_SECONDS
    generation_timeout: float = GENERATION_TIMEOUT_SECONDS
    groq_max_retries: int = GROQ_MAX_RETRIES

    conversation_mode: str = CONVERSATION_MODE
    cors_origins: List[str] = field(default_factory=lambda: list(CORS_ORIGINS))

    @property
    def multi_turn(self) -> bool:
        return self.conversation_mode != SINGLE_TURN


def load_settings() -> Settings:
    """
    Build a Settings instance from the environment.

    Returns:
        Settings populated from environment variables and module defaults

    Raises:
        ValueError: If CONVERSATION_MODE is not a known mode
    """
    if CONVERSATION_MODE not in (MULTI_TURN, SINGLE_TURN):
        raise ValueError(
            f"CONVERSATION_MODE must be '{MULTI_TURN}' or '{SINGLE_TURN}', got '{CONVERSATION_MODE}'"
        )

    return Settings(
        groq_api_key=GROQ_API_KEY,
        cohere_api_key=COHERE_API_KEY,
        supabase_url=SUPABASE_URL,
        supabase_key=SUPABASE_KEY,
    )
