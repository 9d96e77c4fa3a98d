"""Unit tests for ConversationManager."""
import re

import pytest

from models.conversation import ConversationTurn, QualityRating, RelatedDocument, Role, TokenCounts
from services.conversation_manager import ConversationManager, generate_session_id

USER_TOKENS = TokenCounts(embedding_tokens=6, generation_tokens=48, embedding_model="emb", generation_model="gen")
ASSISTANT_TOKENS = TokenCounts(embedding_tokens=0, generation_tokens=320, embedding_model="emb", generation_model="gen")
DOCS = [RelatedDocument("reg.pdf", "dataset/reg.pdf#page=4", 0.91, "h1")]


@pytest.fixture
def manager(chat_store):
    """Create a ConversationManager over the in-memory store."""
    return ConversationManager(chat_store)


class TestSessionIds:

    def test_format(self):
        assert re.fullmatch(r"\d{13}_[a-z0-9]{13}", generate_session_id())

    def test_uniqueness(self):
        """Test that new sessions have unique IDs."""
        assert len({generate_session_id() for _ in range(50)}) == 50


class TestConversationManager:
    """Test suite for ConversationManager."""

    @pytest.mark.asyncio
    async def test_new_session_is_minted(self, manager, chat_store):
        outcome = await manager.record_exchange(None, "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)

        assert not outcome.degraded
        assert re.fullmatch(r"\d{13}_[a-z0-9]{13}", outcome.value)
        assert [t.role for t in chat_store.rows] == [Role.USER, Role.ASSISTANT]
        assert all(t.session_id == outcome.value for t in chat_store.rows)

    @pytest.mark.asyncio
    async def test_session_continuity(self, manager):
        """Two exchanges in one session read back as four turns, most recent first."""
        first = await manager.record_exchange(None, "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)
        second = await manager.record_exchange(first.value, "Q2", "A2", USER_TOKENS, ASSISTANT_TOKENS)

        assert second.value == first.value

        history = await manager.get_history(first.value)
        assert [t.content for t in history] == ["A2", "Q2", "A1", "Q1"]

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, manager):
        first = await manager.record_exchange(None, "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)
        await manager.record_exchange(None, "Other", "Reply", USER_TOKENS, ASSISTANT_TOKENS)

        history = await manager.get_history(first.value)
        assert [t.content for t in history] == ["A1", "Q1"]

    @pytest.mark.asyncio
    async def test_token_and_model_attribution(self, manager, chat_store):
        """Both turns record their own token counts and both model names."""
        await manager.record_exchange(None, "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS, related_documents=DOCS)

        user, assistant = chat_store.rows
        assert (user.embedding_tokens, user.generation_tokens) == (6, 48)
        assert (user.embedding_model, user.generation_model) == ("emb", "gen")
        assert (assistant.embedding_tokens, assistant.generation_tokens) == (0, 320)
        assert assistant.related_documents == DOCS
        assert user.related_documents == []

    @pytest.mark.asyncio
    async def test_negative_counts_are_clamped(self, manager, chat_store):
        await manager.record_turn("s1", Role.USER, "Q", TokenCounts(embedding_tokens=-3, generation_tokens=-1))

        assert chat_store.rows[0].embedding_tokens == 0
        assert chat_store.rows[0].generation_tokens == 0

    @pytest.mark.asyncio
    async def test_storage_failure_degrades(self, manager, chat_store):
        """A failed write still returns the resolved session id."""
        chat_store.fail_inserts = True

        outcome = await manager.record_exchange("s1", "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)

        assert outcome.degraded
        assert outcome.value == "s1"
        assert "database unavailable" in outcome.reason

    @pytest.mark.asyncio
    async def test_history_limit(self, manager):
        session = (await manager.record_exchange(None, "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)).value
        await manager.record_exchange(session, "Q2", "A2", USER_TOKENS, ASSISTANT_TOKENS)

        history = await manager.get_history(session, limit=3)
        assert [t.content for t in history] == ["A2", "Q2", "A1"]

    @pytest.mark.asyncio
    async def test_history_without_session(self, manager):
        assert await manager.get_history(None) == []

    @pytest.mark.asyncio
    async def test_history_read_failure_is_empty(self, manager, chat_store):
        chat_store.fail_reads = True
        assert await manager.get_history("s1") == []

    @pytest.mark.asyncio
    async def test_rate_answer(self, manager, chat_store):
        await manager.record_exchange("s1", "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)
        assistant_id = chat_store.rows[1].id

        assert await manager.rate_answer(assistant_id, QualityRating.GOOD) is True
        assert chat_store.rows[1].quality_rating == QualityRating.GOOD

        assert await manager.rate_answer(assistant_id, QualityRating.BAD) is True
        assert chat_store.rows[1].quality_rating == QualityRating.BAD

    @pytest.mark.asyncio
    async def test_rating_one_answer_leaves_others_unset(self, manager):
        """Rating the second answer shows up in history; the first stays unrated."""
        await manager.record_exchange("s1", "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)
        await manager.record_exchange("s1", "Q2", "A2", USER_TOKENS, ASSISTANT_TOKENS)
        history = await manager.get_history("s1")
        second_answer = next(t for t in history if t.content == "A2")

        assert await manager.rate_answer(second_answer.id, QualityRating.BAD) is True

        ratings = {t.content: t.quality_rating for t in await manager.get_history("s1")}
        assert ratings == {
            "Q1": QualityRating.UNSET,
            "A1": QualityRating.UNSET,
            "Q2": QualityRating.UNSET,
            "A2": QualityRating.BAD,
        }

    @pytest.mark.asyncio
    async def test_rating_a_user_turn_is_ignored(self, manager, chat_store):
        await manager.record_exchange("s1", "Q1", "A1", USER_TOKENS, ASSISTANT_TOKENS)

        assert await manager.rate_answer(chat_store.rows[0].id, QualityRating.GOOD) is False
        assert chat_store.rows[0].quality_rating == QualityRating.UNSET

    @pytest.mark.asyncio
    async def test_rating_unknown_id_is_noop(self, manager, chat_store):
        assert await manager.rate_answer(999, QualityRating.GOOD) is False
        assert chat_store.rows == []

    def test_format_history_is_chronological(self):
        turns = [
            ConversationTurn(id=2, session_id="s", role=Role.ASSISTANT, content="A1"),
            ConversationTurn(id=1, session_id="s", role=Role.USER, content="Q1"),
        ]

        assert ConversationManager.format_history(turns) == [
            {"role": "user", "content": "Q1"},
            {"role": "assistant", "content": "A1"},
        ]
