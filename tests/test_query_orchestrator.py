"""Unit tests for QueryOrchestrator."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import Mock
from models.chunk import Chunk, SearchMatch, RerankResult, RerankedChunk
from models.citation import Citation
from models.conversation import ConversationTurn
from services.errors import ValidationError, EmbeddingError, SearchError, RerankError, GenerationError
from services.gateways import EmbeddingGateway, SearchGateway, RerankGateway, GenerationGateway
from services.llm_client import LLMResponse
from services.query_orchestrator import QueryOrchestrator, NO_INFORMATION_MESSAGE, NO_CONTEXT_PLACEHOLDER
from services.retrieval_engine import RetrievalEngine


def make_match(position, text, source=None, score=0.5):
    chunk = Chunk(
        chunk_id=f"doc-1700000000000-{position}",
        text=text,
        source=source or f"doc{position}.pdf",
        position=position,
        token_estimate=len(text) // 4
    )
    return SearchMatch(chunk=chunk, similarity_score=score)


def user(content):
    return ConversationTurn(role="user", content=content)


def assistant(content):
    return ConversationTurn(role="assistant", content=content)


class TestQueryOrchestrator:
    """Test suite for QueryOrchestrator."""

    @pytest.fixture
    def embedding_model(self):
        gateway = Mock(spec=EmbeddingGateway)
        gateway.embed.return_value = [[0.1, 0.2, 0.3]]
        return gateway

    @pytest.fixture
    def vector_store(self):
        return Mock(spec=SearchGateway)

    @pytest.fixture
    def reranker(self):
        return Mock(spec=RerankGateway)

    @pytest.fixture
    def llm_client(self):
        gateway = Mock(spec=GenerationGateway)
        gateway.supports_streaming = True
        gateway.generate.return_value = LLMResponse(
            text="RAG grounds answers in retrieved text [1][2].",
            tokens_input=120,
            tokens_output=12,
            latency_ms=300,
            model_used="llama-3.3-70b-versatile"
        )
        return gateway

    @pytest.fixture
    def orchestrator(self, embedding_model, vector_store, reranker, llm_client):
        engine = RetrievalEngine(embedding_model, vector_store, reranker)
        return QueryOrchestrator(engine, llm_client)

    @pytest.fixture
    def three_matches(self, vector_store):
        matches = [
            make_match(0, "Retrieval fetches passages.", "intro.pdf", 0.91),
            make_match(1, "Vectors live in an index.", "index.txt", 0.85),
            make_match(2, "RAG means retrieval-augmented generation.", "glossary.md", 0.80),
        ]
        vector_store.search.return_value = matches
        return matches

    def test_citations_follow_reranked_order(self, orchestrator, reranker, three_matches):
        """Rerank indices [2, 0] produce citations from match 2 then match 0."""
        reranker.rerank.return_value = [RerankResult(2, 0.9), RerankResult(0, 0.7)]

        result = orchestrator.answer_query([user("What is RAG?")])

        assert result.citations == [
            Citation(id=1, text=three_matches[2].chunk.text, source="glossary.md", score=0.9),
            Citation(id=2, text=three_matches[0].chunk.text, source="intro.pdf", score=0.7),
        ]
        assert result.answer == "RAG grounds answers in retrieved text [1][2]."
        assert not result.no_results

    def test_each_gateway_called_once(
        self, orchestrator, embedding_model, vector_store, reranker, llm_client, three_matches
    ):
        reranker.rerank.return_value = [RerankResult(1, 0.8)]

        orchestrator.answer_query([user("What is RAG?")])

        embedding_model.embed.assert_called_once_with(["What is RAG?"], "query")
        vector_store.search.assert_called_once_with([0.1, 0.2, 0.3], top_k=15)
        reranker.rerank.assert_called_once_with(
            "What is RAG?",
            [m.chunk.text for m in three_matches],
            top_n=5
        )
        llm_client.generate.assert_called_once()
        llm_client.generate_stream.assert_not_called()

    def test_empty_turns_rejected_without_gateway_calls(
        self, orchestrator, embedding_model, vector_store, reranker, llm_client
    ):
        with pytest.raises(ValidationError, match="No messages provided"):
            orchestrator.answer_query([])

        embedding_model.embed.assert_not_called()
        vector_store.search.assert_not_called()
        reranker.rerank.assert_not_called()
        llm_client.generate.assert_not_called()

    def test_non_list_turns_rejected(self, orchestrator, embedding_model):
        with pytest.raises(ValidationError):
            orchestrator.answer_query("What is RAG?")
        embedding_model.embed.assert_not_called()

    def test_last_turn_must_be_user_question(self, orchestrator, embedding_model):
        with pytest.raises(ValidationError, match="last message"):
            orchestrator.answer_query([user("Hi"), assistant("Hello!")])

        with pytest.raises(ValidationError, match="empty"):
            orchestrator.answer_query([user("   ")])

        embedding_model.embed.assert_not_called()

    def test_unknown_role_rejected(self, orchestrator):
        with pytest.raises(ValidationError, match="Invalid role"):
            orchestrator.answer_query([ConversationTurn(role="system", content="x"), user("Hi")])

    def test_matches_without_text_short_circuit(self, orchestrator, vector_store, reranker, llm_client):
        vector_store.search.return_value = [make_match(0, ""), make_match(1, "   ")]

        result = orchestrator.answer_query([user("What is RAG?")])

        assert result.citations == []
        assert result.answer == NO_INFORMATION_MESSAGE
        assert result.no_results
        reranker.rerank.assert_not_called()
        llm_client.generate.assert_not_called()

    def test_no_matches_short_circuit_in_streaming_mode(self, orchestrator, vector_store, llm_client):
        vector_store.search.return_value = []

        result = orchestrator.answer_query([user("Anything?")], stream=True)

        assert result.citations == []
        assert list(result.deltas()) == [NO_INFORMATION_MESSAGE]
        llm_client.generate_stream.assert_not_called()

    def test_rerank_indices_refer_to_text_bearing_matches(self, orchestrator, vector_store, reranker):
        matches = [make_match(0, ""), make_match(1, "First real passage."), make_match(2, "Second real passage.")]
        vector_store.search.return_value = matches
        reranker.rerank.return_value = [RerankResult(1, 0.95)]

        result = orchestrator.answer_query([user("Which passage?")])

        reranker.rerank.assert_called_once_with(
            "Which passage?", ["First real passage.", "Second real passage."], top_n=5
        )
        assert result.citations == [Citation(id=1, text="Second real passage.", source="doc2.pdf", score=0.95)]

    def test_rerank_index_out_of_range(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(7, 0.9)]

        with pytest.raises(RerankError):
            orchestrator.answer_query([user("What is RAG?")])
        llm_client.generate.assert_not_called()

    def test_messages_carry_system_prompt_then_full_history(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(2, 0.9), RerankResult(0, 0.7)]
        turns = [
            user("What is RAG?"),
            assistant("RAG is retrieval-augmented generation [1]."),
            user("How does it find passages?"),
        ]

        orchestrator.answer_query(turns)

        messages = llm_client.generate.call_args[0][0]
        assert messages[0]["role"] == "system"
        assert messages[1:] == [
            {"role": "user", "content": "What is RAG?"},
            {"role": "assistant", "content": "RAG is retrieval-augmented generation [1]."},
            {"role": "user", "content": "How does it find passages?"},
        ]
        system_prompt = messages[0]["content"]
        assert "[1] Content: RAG means retrieval-augmented generation.\nSource: glossary.md" in system_prompt
        assert "[2] Content: Retrieval fetches passages.\nSource: intro.pdf" in system_prompt

    def test_history_not_mutated(self, orchestrator, reranker, three_matches):
        reranker.rerank.return_value = [RerankResult(0, 0.9)]
        turns = [user("Q1"), assistant("A1"), user("Q2")]
        snapshot = list(turns)

        orchestrator.answer_query(turns)

        assert turns == snapshot

    def test_citation_ids_match_prompt_numbering(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(1, 0.9), RerankResult(2, 0.8), RerankResult(0, 0.1)]

        result = orchestrator.answer_query([user("Explain the index.")])

        system_prompt = llm_client.generate.call_args[0][0][0]["content"]
        assert [c.id for c in result.citations] == [1, 2, 3]
        for citation in result.citations:
            assert f"[{citation.id}] Content: {citation.text}\nSource: {citation.source}" in system_prompt

    def test_streaming_mode_returns_token_stream(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(0, 0.9)]
        llm_client.generate_stream.return_value = iter(["Hel", "lo"])

        result = orchestrator.answer_query([user("Say hello")], stream=True)

        assert result.streaming
        assert result.answer is None
        assert "".join(result.deltas()) == "Hello"
        llm_client.generate.assert_not_called()

    def test_streaming_falls_back_to_blocking(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(0, 0.9)]
        llm_client.supports_streaming = False

        result = orchestrator.answer_query([user("Say hello")], stream=True)

        assert not result.streaming
        llm_client.generate.assert_called_once()
        llm_client.generate_stream.assert_not_called()

    def test_missing_query_vector_raises_embedding_error(self, orchestrator, embedding_model, vector_store):
        embedding_model.embed.return_value = []

        with pytest.raises(EmbeddingError):
            orchestrator.answer_query([user("What is RAG?")])
        vector_store.search.assert_not_called()

    def test_gateway_failures_propagate(self, orchestrator, vector_store, reranker, llm_client):
        vector_store.search.side_effect = SearchError("index unavailable", kind="network")

        with pytest.raises(SearchError):
            orchestrator.answer_query([user("What is RAG?")])
        reranker.rerank.assert_not_called()
        llm_client.generate.assert_not_called()

    def test_stream_open_failure_raises_before_any_output(self, orchestrator, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(0, 0.9)]
        llm_client.generate_stream.side_effect = GenerationError("bad key", kind="authentication")

        with pytest.raises(GenerationError):
            orchestrator.answer_query([user("What is RAG?")], stream=True)

    def test_prompt_size_logged_with_token_encoder(self, embedding_model, vector_store, reranker, llm_client, three_matches):
        reranker.rerank.return_value = [RerankResult(0, 0.9)]
        encoder = Mock()
        encoder.encode.return_value = [1, 2, 3]
        orchestrator = QueryOrchestrator(
            RetrievalEngine(embedding_model, vector_store, reranker), llm_client, token_encoder=encoder
        )

        orchestrator.answer_query([user("What is RAG?")])

        assert encoder.encode.call_count == 2  # system + one user turn


class TestPromptBuilding:
    """Test suite for the grounding block and system prompt helpers."""

    def test_build_context_format(self):
        reranked = [
            RerankedChunk(match=make_match(3, "Alpha text", "a.pdf"), relevance_score=0.9, rank=1),
            RerankedChunk(match=make_match(1, "Beta text", "b.pdf"), relevance_score=0.4, rank=2),
        ]

        context = QueryOrchestrator.build_context(reranked)

        assert context == "[1] Content: Alpha text\nSource: a.pdf\n\n[2] Content: Beta text\nSource: b.pdf"

    def test_build_context_placeholder(self):
        assert QueryOrchestrator.build_context([]) == NO_CONTEXT_PLACEHOLDER

    def test_system_prompt_instructions(self):
        prompt = QueryOrchestrator.build_system_prompt("[1] Content: x\nSource: y")

        assert "[1] Content: x\nSource: y" in prompt
        assert "Citations" in prompt
        assert "Do not make anything up" in prompt
        assert "pronouns" in prompt
