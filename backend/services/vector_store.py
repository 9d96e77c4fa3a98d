"""Vector store implementation using Supabase pgvector."""
import hashlib
import logging
import uuid
from typing import Any, Dict, List, Optional
from supabase import acreate_client, AsyncClient

from models.chunk import SearchResult, VectorPoint
from config import SUPABASE_URL, SUPABASE_KEY, CHUNK_TABLE, EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)

# Ids per DELETE request; each UUID adds ~39 bytes to the URL.
DELETE_BATCH_SIZE = 100


class DimensionMismatchError(RuntimeError):
    """Vector length disagrees with the collection's configured dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


def point_id_for(chunk_id: str) -> str:
    """Deterministic UUID for a chunk id, so upserts overwrite instead of duplicating."""
    return str(uuid.UUID(hex=hashlib.md5(chunk_id.encode("utf-8")).hexdigest()))


class VectorStore:
    """
    Store chunk embeddings and enable similarity search using Supabase pgvector.

    The table and the `match_chunks` / `chunk_embedding_dimension` /
    `create_chunk_collection` functions are defined in
    `migrations/001_create_document_chunks.sql`.
    """

    def __init__(
        self,
        client: AsyncClient,
        table_name: str = CHUNK_TABLE,
        dimension: int = EMBEDDING_DIMENSION
    ):
        """
        Initialize the vector store.

        Args:
            client: Async Supabase client
            table_name: Name of the table to store chunks
            dimension: Configured embedding dimensionality
        """
        self.client = client
        self.table_name = table_name
        self.dimension = dimension

        logger.info(f"Initialized VectorStore with table: {table_name} (dimension {dimension})")

    @classmethod
    async def connect(
        cls,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        **kwargs: Any
    ) -> "VectorStore":
        """
        Create the Supabase client and wrap it.

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        client = await acreate_client(supabase_url, supabase_key)
        return cls(client, **kwargs)

    def validate_vector(self, vector: List[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

    async def ensure_collection(self, dimension: Optional[int] = None) -> bool:
        """
        Make sure the chunk table exists with the configured dimension.

        The table is dropped and recreated only when it is missing or its
        stored dimension disagrees with configuration.

        Args:
            dimension: Required dimension (defaults to the configured one)

        Returns:
            True if the table was (re)created, False if it was already correct
        """
        dimension = dimension or self.dimension
        try:
            response = await self.client.rpc(
                "chunk_embedding_dimension", {"table_name": self.table_name}
            ).execute()
            existing = response.data

            if existing == dimension:
                logger.info(f"Vector table {self.table_name} exists with dimension {dimension}")
                return False

            if existing is None:
                logger.info(f"Vector table {self.table_name} does not exist, creating it")
            else:
                logger.warning(
                    f"Vector table {self.table_name} has dimension {existing}, "
                    f"required {dimension}; recreating"
                )

            await self.client.rpc(
                "create_chunk_collection",
                {"table_name": self.table_name, "dimension": dimension}
            ).execute()
            self.dimension = dimension
            logger.info(f"Created vector table {self.table_name} with dimension {dimension}")
            return True

        except Exception as e:
            error_msg = f"Failed to set up vector table: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    async def upsert(self, points: List[VectorPoint]) -> None:
        """
        Insert or overwrite points by id.

        Args:
            points: Points to store

        Raises:
            ValueError: If points list is empty
            DimensionMismatchError: If any vector has the wrong length
            RuntimeError: If database operation fails
        """
        if not points:
            raise ValueError("Points list cannot be empty")

        for point in points:
            self.validate_vector(point.vector)

        records = [
            {
                "id": point.point_id,
                "chunk_id": point.payload.get("chunk_id"),
                "payload": point.payload,
                "embedding": point.vector,
            }
            for point in points
        ]

        try:
            await self.client.table(self.table_name).upsert(records, on_conflict="id").execute()
            logger.info(f"Upserted {len(records)} points into {self.table_name}")
        except Exception as e:
            error_msg = f"Failed to upsert points into vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    async def query(
        self,
        vector: List[float],
        limit: int = 10,
        score_threshold: float = 0.0,
        filter: Optional[Dict[str, Any]] = None
    ) -> List[SearchResult]:
        """
        Find the most similar points using cosine similarity.

        Args:
            vector: Query embedding
            limit: Maximum number of results
            score_threshold: Minimum similarity a result must reach
            filter: Payload containment filter, passed through unmodified

        Returns:
            Results sorted by descending score

        Raises:
            ValueError: If limit is invalid
            DimensionMismatchError: If the vector has the wrong length
            RuntimeError: If database operation fails
        """
        if limit <= 0:
            raise ValueError("limit must be positive")

        self.validate_vector(vector)

        params: Dict[str, Any] = {
            "table_name": self.table_name,
            "query_embedding": vector,
            "match_threshold": score_threshold,
            "match_count": limit,
        }
        if filter:
            params["filter"] = filter
            logger.debug(f"Using filter: {filter}")

        try:
            response = await self.client.rpc("match_chunks", params).execute()
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        results = [
            SearchResult(
                # 1 - cosine distance, clamped to [0, 1]
                score=max(0.0, min(1.0, float(row["similarity"]))),
                payload=row.get("payload") or {},
            )
            for row in (response.data or [])
        ]

        if results:
            logger.debug(f"Found {len(results)} results, top score {results[0].score:.3f}")
        else:
            logger.debug("No similarity results found")
        return results

    async def scroll_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Return up to `limit` stored points as {"id", "payload"} without vectors."""
        try:
            response = await self.client.table(self.table_name).select("id, payload").limit(limit).execute()
        except Exception as e:
            error_msg = f"Failed to list vector store entries: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        return [{"id": str(row["id"]), "payload": row.get("payload") or {}} for row in (response.data or [])]

    async def delete_all(self, ids: List[str], batch_size: int = DELETE_BATCH_SIZE) -> int:
        """
        Delete the given point ids. Returns how many ids were requested.

        PostgREST carries the `in.(...)` id list in the request URL, so ids are
        deleted `batch_size` at a time.
        """
        if not ids:
            return 0
        try:
            for start in range(0, len(ids), batch_size):
                batch = ids[start:start + batch_size]
                await self.client.table(self.table_name).delete().in_("id", batch).execute()
            logger.info(f"Deleted {len(ids)} points from {self.table_name}")
            return len(ids)
        except Exception as e:
            error_msg = f"Failed to delete points from vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    async def clear(self, batch_size: int = 1000) -> int:
        """
        Remove every point, used before a full re-ingestion.

        Returns:
            Number of points deleted
        """
        deleted = 0
        while True:
            entries = await self.scroll_all(limit=batch_size)
            if not entries:
                break
            deleted += await self.delete_all([entry["id"] for entry in entries])
            if len(entries) < batch_size:
                break

        if deleted:
            logger.info(f"Cleared {deleted} points from {self.table_name}")
        else:
            logger.info("Vector table is already empty")
        return deleted

    async def count(self) -> int:
        """Get the total number of points in the vector store."""
        try:
            response = await self.client.table(self.table_name).select("id", count="exact").limit(1).execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count points in vector store: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e
