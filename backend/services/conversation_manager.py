"""Conversation manager: the ledger of user/assistant turns per session."""
import logging
import secrets
import string
import time
from typing import Dict, List, Optional

from models.conversation import ConversationTurn, QualityRating, RelatedDocument, Role, TokenCounts
from models.outcome import Degraded, Ok, Outcome
from services.chat_history_store import ChatHistoryStore
from config import HISTORY_PAGE_SIZE

logger = logging.getLogger(__name__)

SESSION_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SESSION_SUFFIX_LENGTH = 13


def generate_session_id() -> str:
    """`{epoch-millis}_{random-suffix}`."""
    suffix = "".join(secrets.choice(SESSION_SUFFIX_ALPHABET) for _ in range(SESSION_SUFFIX_LENGTH))
    return f"{int(time.time() * 1000)}_{suffix}"


class ConversationManager:
    """Persists turns, mints session ids, and serves history and feedback."""

    def __init__(self, store: ChatHistoryStore):
        """
        Initialize the conversation manager.

        Args:
            store: Relational store for chat turns
        """
        self.store = store
        logger.info("ConversationManager initialized")

    async def record_turn(
        self,
        session_id: str,
        role: Role,
        content: str,
        tokens: TokenCounts,
        related_documents: Optional[List[RelatedDocument]] = None
    ) -> int:
        """
        Persist a single turn.

        Related documents are only kept on assistant turns.

        Returns:
            Store-assigned turn id

        Raises:
            Exception: Whatever the store raised
        """
        turn_id = await self.store.insert_turn(
            session_id=session_id,
            role=role,
            content=content,
            embedding_tokens=max(0, tokens.embedding_tokens),
            generation_tokens=max(0, tokens.generation_tokens),
            embedding_model=tokens.embedding_model,
            generation_model=tokens.generation_model,
            related_documents=related_documents if role == Role.ASSISTANT else None,
        )
        logger.debug(f"Stored {role.value} turn {turn_id} in session {session_id}")
        return turn_id

    async def record_exchange(
        self,
        session_id: Optional[str],
        user_message: str,
        assistant_message: str,
        user_tokens: TokenCounts,
        assistant_tokens: TokenCounts,
        related_documents: Optional[List[RelatedDocument]] = None
    ) -> Outcome[str]:
        """
        Persist a user turn followed by its assistant turn.

        The session id is resolved (or minted) before anything is written and
        is returned even when a write fails; storage failures are logged, not
        raised, so an answer that was already produced still reaches the caller.

        Returns:
            Ok(session_id), or Degraded(session_id, reason) if a write failed
        """
        resolved = session_id or generate_session_id()
        if not session_id:
            logger.info(f"Started new session {resolved}")

        try:
            await self.record_turn(resolved, Role.USER, user_message, user_tokens)
            await self.record_turn(
                resolved, Role.ASSISTANT, assistant_message, assistant_tokens,
                related_documents=related_documents or []
            )
        except Exception as e:
            logger.error(f"Error storing exchange for session {resolved}: {e}", exc_info=True)
            return Degraded(resolved, reason=str(e))

        logger.info(f"Stored exchange in session {resolved}")
        return Ok(resolved)

    async def rate_answer(self, turn_id: int, rating: QualityRating) -> bool:
        """
        Record quality feedback on an assistant turn.

        Callers validate the rating; unknown or non-assistant ids are a no-op.

        Returns:
            True if an assistant turn was updated
        """
        updated = await self.store.update_rating(turn_id, rating)
        if updated:
            logger.info(f"Answer {turn_id} rated {rating.value}")
        else:
            logger.warning(f"Rating ignored: no assistant turn with id {turn_id}")
        return bool(updated)

    async def get_history(self, session_id: Optional[str], limit: int = HISTORY_PAGE_SIZE) -> List[ConversationTurn]:
        """
        Turns of a session, most recent first.

        History is always scoped to a session, so no session id means no turns.
        Read failures are logged and treated as an empty history.
        """
        if not session_id:
            return []

        try:
            return await self.store.list_turns(session_id, limit)
        except Exception as e:
            logger.error(f"Error retrieving history for session {session_id}: {e}")
            return []

    @staticmethod
    def format_history(turns: List[ConversationTurn]) -> List[Dict[str, str]]:
        """Most-recent-first turns as chronological chat messages."""
        return [{"role": turn.role.value, "content": turn.content} for turn in reversed(turns)]
