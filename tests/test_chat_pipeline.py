"""End-to-end tests for ChatPipeline over in-memory stores and mocked providers."""
from unittest.mock import AsyncMock

import pytest

from conftest import llm_error, llm_response
from models.chunk import SearchResult, VectorPoint
from models.conversation import QualityRating, Role
from services.answer_synthesizer import APOLOGY, AnswerSynthesizer
from services.chat_pipeline import ChatPipeline, related_documents_for
from services.conversation_manager import ConversationManager
from services.embedding_model import Embedding, EmbeddingRateLimitError
from services.query_refiner import QueryRefiner
from services.retrieval_engine import RetrievalEngine


def stored_point(point_id, vector, name, page, document_hash):
    return VectorPoint(point_id=point_id, vector=vector, payload={
        "chunk_id": point_id,
        "text": f"Passage {point_id}",
        "document_name": name,
        "document_path": f"dataset/{name}",
        "document_hash": document_hash,
        "page_number": page,
    })


@pytest.fixture
async def pipeline(llm_client, embedding_model, vector_store, chat_store):
    await vector_store.upsert([
        stored_point("reg-4", [1.0, 0.0, 0.0], "reg.pdf", 4, "h-reg"),
        stored_point("reg-5", [0.95, 0.05, 0.0], "reg.pdf", 5, "h-reg"),
        stored_point("annex-1", [0.8, 0.2, 0.0], "annex.pdf", 1, "h-annex"),
        stored_point("unrelated", [0.0, 0.0, 1.0], "other.pdf", 2, "h-other"),
    ])
    return ChatPipeline(
        query_refiner=QueryRefiner(llm_client),
        retrieval_engine=RetrievalEngine(vector_store, embedding_model, default_score_threshold=0.3),
        answer_synthesizer=AnswerSynthesizer(llm_client, sleep=AsyncMock()),
        conversation_manager=ConversationManager(chat_store),
        vector_store=vector_store,
        embedding_model_name="emb-model",
        generation_model_name="gen-model",
    )


class TestRelatedDocuments:

    def test_one_entry_per_document(self):
        results = [
            SearchResult(0.9, {"document_name": "a.pdf", "document_path": "d/a.pdf", "document_hash": "ha", "page_number": 3}),
            SearchResult(0.8, {"document_name": "a.pdf", "document_path": "d/a.pdf", "document_hash": "ha", "page_number": 7}),
            SearchResult(0.7, {"document_name": "b.pdf", "document_path": "d/b.pdf", "document_hash": "hb"}),
        ]

        related = related_documents_for(results)

        assert [(d.name, d.locator, d.score) for d in related] == [
            ("a.pdf", "d/a.pdf#page=3", 0.9),
            ("b.pdf", "d/b.pdf", 0.7),
        ]


class TestChatPipeline:

    @pytest.mark.asyncio
    async def test_chat_happy_path(self, pipeline, llm_client, chat_store):
        llm_client.complete.side_effect = [
            llm_response("record retention period", tokens_input=40, tokens_output=6),
            llm_response("Records are kept for five years [Document 1].", tokens_input=300, tokens_output=20),
        ]

        result = await pipeline.chat("how long do they keep records?")

        assert result.query == "record retention period"
        assert result.answer.startswith("Records are kept")
        assert result.count == 3
        assert all(r.score >= 0.3 for r in result.results)
        assert [d.name for d in result.related_documents] == ["reg.pdf", "annex.pdf"]
        assert result.related_documents[0].locator == "dataset/reg.pdf#page=4"

        assert result.tokens_used.refinement == 46
        assert result.tokens_used.embedding == 4
        assert result.tokens_used.generation == 320
        assert result.tokens_used.total == 370
        assert result.degraded_steps == []

        user, assistant = chat_store.rows
        assert user.role == Role.USER and user.content == "how long do they keep records?"
        assert (user.embedding_tokens, user.generation_tokens) == (4, 46)
        assert (user.embedding_model, user.generation_model) == ("emb-model", "gen-model")
        assert assistant.generation_tokens == 320
        assert assistant.session_id == result.session_id
        assert [d.name for d in assistant.related_documents] == ["reg.pdf", "annex.pdf"]

    @pytest.mark.asyncio
    async def test_follow_up_sees_history(self, pipeline, llm_client):
        """The second request in a session sends the first exchange to both LLM calls."""
        llm_client.complete.side_effect = [
            llm_response("q1"), llm_response("A1"),
            llm_response("q2"), llm_response("A2"),
        ]

        first = await pipeline.chat("first question")
        second = await pipeline.chat("and then?", session_id=first.session_id)

        assert second.session_id == first.session_id
        refine_messages = llm_client.complete.await_args_list[2].args[0]
        assert {"role": "user", "content": "first question"} in refine_messages
        assert {"role": "assistant", "content": "A1"} in refine_messages

        history = await pipeline.history(first.session_id)
        assert [t.content for t in history] == ["A2", "and then?", "A1", "first question"]

    @pytest.mark.asyncio
    async def test_refinement_failure_uses_raw_query(self, pipeline, llm_client, embedding_model):
        llm_client.complete.side_effect = [llm_error("API_ERROR"), llm_response("answer")]

        result = await pipeline.chat("raw prompt")

        assert result.query == "raw prompt"
        assert result.tokens_used.refinement == 0
        assert result.degraded_steps == ["refinement"]
        embedding_model.embed.assert_awaited_once_with("raw prompt")

    @pytest.mark.asyncio
    async def test_generation_failure_still_records_apology(self, pipeline, llm_client, chat_store):
        llm_client.complete.side_effect = [llm_response("refined"), llm_error("API_ERROR")]

        result = await pipeline.chat("question")

        assert result.answer == APOLOGY
        assert result.tokens_used.generation == 0
        assert "synthesis" in result.degraded_steps
        assert chat_store.rows[1].content == APOLOGY

    @pytest.mark.asyncio
    async def test_persistence_failure_still_answers(self, pipeline, llm_client, chat_store):
        llm_client.complete.side_effect = [llm_response("refined"), llm_response("answer")]
        chat_store.fail_inserts = True

        result = await pipeline.chat("question", session_id="s1")

        assert result.answer == "answer"
        assert result.session_id == "s1"
        assert "persistence" in result.degraded_steps

    @pytest.mark.asyncio
    async def test_embedding_rate_limit_fails_request(self, pipeline, llm_client, embedding_model, chat_store):
        """A capped embedding retry surfaces as a distinguishable error and nothing is stored."""
        llm_client.complete.side_effect = [llm_response("refined")]
        embedding_model.embed.side_effect = EmbeddingRateLimitError("Rate limit exceeded after 3 attempts")

        with pytest.raises(EmbeddingRateLimitError):
            await pipeline.chat("question")
        assert chat_store.rows == []

    @pytest.mark.asyncio
    async def test_no_matches_still_answers(self, pipeline, llm_client, embedding_model):
        embedding_model.embed.return_value = Embedding(vector=[0.0, 1.0, 0.0], tokens=2)
        llm_client.complete.side_effect = [llm_response("refined"), llm_response("The documents do not say.")]

        result = await pipeline.chat("unrelated question")

        assert result.count == 0
        assert result.related_documents == []
        synth_messages = llm_client.complete.await_args_list[1].args[0]
        assert "No relevant document excerpts were found." in synth_messages[1]["content"]

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, pipeline, chat_store):
        with pytest.raises(ValueError):
            await pipeline.chat("   ")
        assert chat_store.rows == []

    @pytest.mark.asyncio
    async def test_feedback(self, pipeline, llm_client, chat_store):
        llm_client.complete.side_effect = [llm_response("refined"), llm_response("answer")]
        await pipeline.chat("question", session_id="s1")

        assert await pipeline.feedback(chat_store.rows[1].id, "good") is True
        assert chat_store.rows[1].quality_rating == QualityRating.GOOD

    @pytest.mark.asyncio
    async def test_feedback_on_second_exchange(self, pipeline, llm_client):
        llm_client.complete.side_effect = [
            llm_response("refined 1"), llm_response("first answer"),
            llm_response("refined 2"), llm_response("second answer"),
        ]
        first = await pipeline.chat("first question")
        await pipeline.chat("second question", session_id=first.session_id)
        answers = [t for t in await pipeline.history(first.session_id) if t.role == Role.ASSISTANT]
        assert [t.content for t in answers] == ["second answer", "first answer"]

        assert await pipeline.feedback(answers[0].id, "bad") is True

        answers = [t for t in await pipeline.history(first.session_id) if t.role == Role.ASSISTANT]
        assert answers[0].quality_rating == QualityRating.BAD
        assert answers[1].quality_rating == QualityRating.UNSET

    @pytest.mark.asyncio
    async def test_feedback_unknown_id_succeeds(self, pipeline):
        assert await pipeline.feedback(12345, "bad") is True

    @pytest.mark.asyncio
    async def test_feedback_invalid_rating(self, pipeline):
        with pytest.raises(ValueError):
            await pipeline.feedback(1, "meh")

    @pytest.mark.asyncio
    async def test_list_all(self, pipeline):
        entries = await pipeline.list_all(limit=2)

        assert len(entries) == 2
        assert all("payload" in entry for entry in entries)
