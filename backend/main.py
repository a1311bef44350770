"""Main entry point for the Citation RAG query API."""
import logging
from typing import List, Optional
import tiktoken
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import iterate_in_threadpool

from config import PORT, LOG_LEVEL, LOG_FORMAT, CORS_ORIGINS, Settings, load_settings
from logger import setup_logging
from models.api import QueryRequest, QueryResponse, IngestResponse, HistoryEntryModel
from models.conversation import ConversationTurn, USER
from models.document import TEXT
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.embedding_model import EmbeddingModel
from services.errors import ValidationError, ProviderError, TIMEOUT
from services.history_store import HistoryStore
from services.ingestion_service import IngestionService
from services.llm_client import LLMClient
from services.query_orchestrator import QueryOrchestrator
from services.reranker import Reranker
from services.retrieval_engine import RetrievalEngine
from services.stream_protocol import encode_stream, MEDIA_TYPE
from services.vector_store import VectorStore

if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL)

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Citation RAG Query API",
    description="Answers questions from indexed documents with numbered citations",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
settings: Settings = None
query_orchestrator: QueryOrchestrator = None
ingestion_service: IngestionService = None
history_store: HistoryStore = None
document_loader: DocumentLoader = None


@app.on_event("startup")
async def startup_event():
    """Build every gateway from one Settings instance."""
    global settings, query_orchestrator, ingestion_service, history_store, document_loader

    logger.info("Initializing Citation RAG services...")

    try:
        settings = load_settings()

        embedding_model = EmbeddingModel(
            api_key=settings.cohere_api_key,
            model_name=settings.embedding_model,
            dimension=settings.embedding_dim,
            api_url=settings.cohere_api_url,
            timeout=settings.embedding_timeout
        )
        vector_store = VectorStore(
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
            table_name=settings.chunks_table,
            match_function=settings.match_function,
            timeout=settings.search_timeout
        )
        reranker = Reranker(
            api_key=settings.cohere_api_key,
            model_name=settings.rerank_model,
            api_url=settings.cohere_api_url,
            timeout=settings.rerank_timeout
        )
        llm_client = LLMClient(
            api_key=settings.groq_api_key,
            model=settings.generation_model,
            temperature=settings.generation_temperature,
            max_tokens=settings.generation_max_tokens,
            timeout=settings.generation_timeout,
            max_retries=settings.groq_max_retries
        )
        logger.info("Initialized gateways")

        retrieval_engine = RetrievalEngine(
            embedding_model,
            vector_store,
            reranker,
            search_top_k=settings.search_top_k,
            rerank_top_n=settings.rerank_top_n
        )

        token_encoder = None
        try:
            token_encoder = tiktoken.get_encoding("o200k_base")
            logger.info("Initialized tiktoken encoder (o200k_base)")
        except Exception as e:
            logger.warning(f"tiktoken encoder unavailable, prompt sizes will not be logged: {e}")

        query_orchestrator = QueryOrchestrator(retrieval_engine, llm_client, token_encoder=token_encoder)
        logger.info("Initialized QueryOrchestrator")

        history_store = HistoryStore(
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key,
            table_name=settings.history_table
        )
        ingestion_service = IngestionService(
            ChunkingEngine(settings.chunk_size, settings.chunk_overlap),
            embedding_model,
            vector_store,
            history_store,
            embed_batch_size=settings.embed_batch_size,
            upsert_batch_size=settings.upsert_batch_size
        )
        document_loader = DocumentLoader()
        logger.info("Initialized IngestionService")

        logger.info(f"All services initialized successfully (conversation mode: {settings.conversation_mode})")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    logger.warning(f"Rejected request: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request, exc: ProviderError):
    logger.error(
        f"{exc.provider} provider error: {exc.message}",
        extra={"error_code": exc.code, "error_details": exc.details}
    )
    status_code = 504 if exc.kind == TIMEOUT else 503
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Citation RAG Query API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "citation-rag-query",
        "version": "1.0.0"
    }


def _request_turns(request: QueryRequest) -> List[ConversationTurn]:
    """Normalise a query request into conversation turns."""
    if request.messages:
        turns = [ConversationTurn(role=m.role, content=m.content) for m in request.messages]
    elif request.query and request.query.strip():
        turns = [ConversationTurn(role=USER, content=request.query)]
    else:
        turns = []

    # Single-turn mode answers each question independently of earlier turns
    if turns and not settings.multi_turn:
        turns = turns[-1:]
    return turns


async def _stream_body(body):
    """Forward encoder output; closing the encoder releases the generation stream."""
    try:
        async for piece in iterate_in_threadpool(body):
            yield piece
    finally:
        body.close()


@app.post("/api/query", response_model=QueryResponse)
def query_endpoint(request: QueryRequest):
    """
    Answer a question from the indexed documents.

    With ``stream`` set (the default) the body is the citation header, the
    metadata separator, then answer text as it is generated. Otherwise a JSON
    QueryResponse is returned.

    Validation and provider failures raised before the body starts are
    returned as structured JSON errors by the exception handlers.
    """
    turns = _request_turns(request)
    result = query_orchestrator.answer_query(turns, stream=request.stream)

    if not request.stream:
        return QueryResponse(
            answer=result.answer or "",
            citations=[c.to_dict() for c in result.citations],
            timing=result.timing_ms
        )

    body = encode_stream(result.citations, result.deltas())
    return StreamingResponse(
        _stream_body(body),
        media_type=MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no"  # Disable buffering in nginx
        }
    )


@app.post("/api/ingest", response_model=IngestResponse)
def ingest_endpoint(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    sourceName: Optional[str] = Form(None),
):
    """Index an uploaded file (PDF or text) or a pasted block of text."""
    if file is not None:
        try:
            loaded = document_loader.extract_text(file.filename or "upload", file.file.read(), file.content_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        content, source, doc_type = loaded.text, sourceName or loaded.name, loaded.doc_type
    else:
        content, source, doc_type = text, sourceName, TEXT

    result = ingestion_service.ingest(content, source, doc_type)
    return IngestResponse(success=True, count=result.chunk_count, message=result.message)


@app.get("/api/documents", response_model=List[HistoryEntryModel])
def documents_endpoint():
    """Ingestion history, newest first."""
    try:
        return [entry.to_dict() for entry in history_store.list_entries()]
    except Exception as e:
        logger.error(f"Failed to fetch history: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch document history"})


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Citation RAG Query API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
