"""Chat history persistence in Supabase Postgres."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from supabase import acreate_client, AsyncClient

from models.conversation import ConversationTurn, QualityRating, RelatedDocument, Role
from config import SUPABASE_URL, SUPABASE_KEY, CHAT_HISTORY_TABLE

logger = logging.getLogger(__name__)


def parse_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """
    Parse timestamp string from Supabase, handling various formats.

    Supabase can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This normalizes
    the fractional part to six digits.
    """
    if not timestamp_str:
        return None

    timestamp_str = timestamp_str.replace("Z", "+00:00")

    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        head, tail = timestamp_str.split(".", 1)
        for sign in ("+", "-"):
            if sign in tail:
                fraction, tz = tail.split(sign, 1)
                timestamp_str = f"{head}.{fraction[:6].ljust(6, '0')}{sign}{tz}"
                break
        else:
            timestamp_str = f"{head}.{tail[:6].ljust(6, '0')}"

    return datetime.fromisoformat(timestamp_str)


def row_to_turn(row: Dict[str, Any]) -> ConversationTurn:
    """Map a `chat_history` row to a ConversationTurn."""
    return ConversationTurn(
        id=int(row["id"]),
        session_id=row.get("session_id") or "",
        role=Role(row["role"]),
        content=row.get("content") or "",
        embedding_tokens=row.get("emb_tokens") or 0,
        generation_tokens=row.get("gen_tokens") or 0,
        embedding_model=row.get("emb_model"),
        generation_model=row.get("gen_model"),
        quality_rating=QualityRating(row["answer_val"]) if row.get("answer_val") else QualityRating.UNSET,
        related_documents=[RelatedDocument.from_dict(d) for d in (row.get("relative_docs") or [])],
        created_at=parse_timestamp(row.get("created_at")),
    )


class ChatHistoryStore:
    """Reads and writes conversation turns in the `chat_history` table."""

    def __init__(self, client: AsyncClient, table_name: str = CHAT_HISTORY_TABLE):
        self.client = client
        self.table_name = table_name
        logger.info(f"Initialized ChatHistoryStore with table: {table_name}")

    @classmethod
    async def connect(
        cls,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        **kwargs: Any
    ) -> "ChatHistoryStore":
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        client = await acreate_client(supabase_url, supabase_key)
        return cls(client, **kwargs)

    async def setup_schema(self) -> None:
        """Create the table and indexes if missing; safe on every startup."""
        await self.client.rpc("setup_chat_history", {"table_name": self.table_name}).execute()
        logger.info(f"Chat history table {self.table_name} ready")

    async def insert_turn(
        self,
        session_id: str,
        role: Role,
        content: str,
        embedding_tokens: int = 0,
        generation_tokens: int = 0,
        embedding_model: Optional[str] = None,
        generation_model: Optional[str] = None,
        related_documents: Optional[List[RelatedDocument]] = None
    ) -> int:
        """Insert one turn and return its store-assigned id."""
        record = {
            "session_id": session_id,
            "role": role.value,
            "content": content,
            "emb_tokens": embedding_tokens,
            "gen_tokens": generation_tokens,
            "emb_model": embedding_model,
            "gen_model": generation_model,
            "answer_val": None,
            "relative_docs": [d.to_dict() for d in related_documents] if related_documents is not None else None,
        }
        response = await self.client.table(self.table_name).insert(record).execute()
        return int(response.data[0]["id"])

    async def update_rating(self, turn_id: int, rating: QualityRating) -> int:
        """
        Set the rating of an assistant turn.

        Returns:
            Number of rows updated (0 for unknown or non-assistant ids)
        """
        value = None if rating == QualityRating.UNSET else rating.value
        response = await (
            self.client.table(self.table_name)
            .update({"answer_val": value})
            .eq("id", turn_id)
            .eq("role", Role.ASSISTANT.value)
            .execute()
        )
        return len(response.data or [])

    async def list_turns(self, session_id: str, limit: int) -> List[ConversationTurn]:
        """Turns of one session, most recent first."""
        response = await (
            self.client.table(self.table_name)
            .select("*")
            .eq("session_id", session_id)
            .order("created_at", desc=True)
            .order("id", desc=True)
            .limit(limit)
            .execute()
        )
        return [row_to_turn(row) for row in (response.data or [])]
