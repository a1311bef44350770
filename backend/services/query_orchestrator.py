"""Query orchestrator: retrieval, prompt assembly, generation and citation mapping."""
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from models.chunk import RerankedChunk
from models.citation import Citation
from models.conversation import ConversationTurn, ROLES, USER, SYSTEM
from services.errors import ValidationError
from services.gateways import GenerationGateway
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(__name__)

NO_INFORMATION_MESSAGE = (
    "I couldn't find any relevant information in the indexed documents to answer that question."
)
NO_CONTEXT_PLACEHOLDER = "No relevant documents found."

SYSTEM_PROMPT_TEMPLATE = """You are an intelligent assistant for a document question-answering service.
Your goal is to answer the user's question using the provided context.

**Instructions:**
1. **Context-Driven**: Base your answer strictly on the provided context snippets.
2. **Citations**: REQUIRED. Every factual claim must carry a bracketed reference number matching the snippet it came from, e.g. [1] or [2][3]. Only use the numbers listed in the context below.
3. **Honesty**: If the context does not contain the answer, say so plainly. Do not make anything up.
4. **Conversation History**: The user may refer to earlier messages. Use the conversation history to resolve pronouns and references (e.g. "it", "they", "that file") before answering.

**Context from Documents:**
{context}"""


@dataclass
class QueryResult:
    """Citations plus either the finished answer or a live token stream."""
    citations: List[Citation]
    answer: Optional[str] = None
    token_stream: Optional[Iterable[str]] = None
    timing_ms: int = 0
    no_results: bool = False

    @property
    def streaming(self) -> bool:
        return self.token_stream is not None

    def deltas(self) -> Iterable[str]:
        """Answer text as an iterable of deltas, regardless of generation mode."""
        if self.token_stream is not None:
            return self.token_stream
        return [self.answer] if self.answer else []


class QueryOrchestrator:
    """
    Compose retrieval, reranking and generation into one request/response cycle.

    The orchestrator keeps no state between calls: everything it needs comes
    from the ``turns`` argument and the injected gateways.
    """

    def __init__(
        self,
        retrieval_engine: RetrievalEngine,
        llm_client: GenerationGateway,
        token_encoder=None
    ):
        """
        Args:
            retrieval_engine: Embed/search/rerank stage
            llm_client: Generation gateway
            token_encoder: Optional tiktoken encoding used to log prompt size
        """
        self.retrieval_engine = retrieval_engine
        self.llm_client = llm_client
        self.token_encoder = token_encoder

    def answer_query(self, turns: List[ConversationTurn], stream: bool = False) -> QueryResult:
        """
        Answer the last turn of ``turns`` grounded in retrieved passages.

        Args:
            turns: Caller conversation, oldest first; the last turn is the active question
            stream: True when the transport can deliver the answer incrementally

        Returns:
            QueryResult with citations numbered 1..N in reranked order

        Raises:
            ValidationError: If turns is empty, malformed, or the question is blank
            EmbeddingError, SearchError, RerankError, GenerationError: On gateway failure
        """
        start_time = time.time()
        question = self.validate_turns(turns)
        logger.info(f"Processing query: {question[:100]}...")

        # Steps 1-3: embed, search, drop text-less matches
        matches = self.retrieval_engine.retrieve(question)

        # Step 4: nothing citable, answer without calling the reranker or model
        if not matches:
            logger.info("No valid matches; returning the no-information answer")
            return QueryResult(
                citations=[],
                answer=NO_INFORMATION_MESSAGE,
                timing_ms=int((time.time() - start_time) * 1000),
                no_results=True
            )

        # Steps 5-6: rerank and number citations
        reranked = self.retrieval_engine.rerank(question, matches)
        citations = self.build_citations(reranked)

        # Steps 7-9: grounding block, system prompt, message sequence
        system_prompt = self.build_system_prompt(self.build_context(reranked))
        messages = self.build_messages(system_prompt, turns)
        self._log_prompt_size(messages)

        # Step 10: generation mode follows transport capability
        if stream and self.llm_client.supports_streaming:
            token_stream = self.llm_client.generate_stream(messages)
            return QueryResult(
                citations=citations,
                token_stream=token_stream,
                timing_ms=int((time.time() - start_time) * 1000)
            )

        response = self.llm_client.generate(messages)
        total_latency_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Query processed successfully in {total_latency_ms}ms")
        return QueryResult(citations=citations, answer=response.text, timing_ms=total_latency_ms)

    @staticmethod
    def validate_turns(turns: List[ConversationTurn]) -> str:
        """Check the conversation shape and return the active question."""
        if not isinstance(turns, list) or not turns:
            raise ValidationError("No messages provided")

        for turn in turns:
            if not isinstance(turn, ConversationTurn):
                raise ValidationError(f"Expected ConversationTurn, got {type(turn).__name__}")
            if turn.role not in ROLES:
                raise ValidationError(f"Invalid role: {turn.role}")
            if not isinstance(turn.content, str):
                raise ValidationError("Message content must be a string")

        last = turns[-1]
        if last.role != USER:
            raise ValidationError("The last message must come from the user")
        if not last.content.strip():
            raise ValidationError("Question cannot be empty")
        return last.content

    @staticmethod
    def build_citations(reranked: List[RerankedChunk]) -> List[Citation]:
        """Citation ids follow reranked order: the i-th chunk is ``[i]``."""
        return [
            Citation(id=index, text=chunk.text, source=chunk.source, score=chunk.relevance_score)
            for index, chunk in enumerate(reranked, start=1)
        ]

    @staticmethod
    def build_context(reranked: List[RerankedChunk]) -> str:
        """Render the grounding block, numbered to match the citations."""
        if not reranked:
            return NO_CONTEXT_PLACEHOLDER
        return "\n\n".join(
            f"[{index}] Content: {chunk.text}\nSource: {chunk.source}"
            for index, chunk in enumerate(reranked, start=1)
        )

    @staticmethod
    def build_system_prompt(context: str) -> str:
        return SYSTEM_PROMPT_TEMPLATE.format(context=context)

    @staticmethod
    def build_messages(system_prompt: str, turns: List[ConversationTurn]) -> List[Dict[str, str]]:
        """One system message, then the caller's history untouched and in order."""
        return [{"role": SYSTEM, "content": system_prompt}] + [turn.to_message() for turn in turns]

    def _log_prompt_size(self, messages: List[Dict[str, str]]) -> None:
        if self.token_encoder is None:
            return
        prompt_tokens = sum(len(self.token_encoder.encode(m["content"])) for m in messages)
        logger.debug(f"Prompt size: {prompt_tokens} tokens across {len(messages)} messages")
