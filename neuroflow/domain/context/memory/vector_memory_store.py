from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar
import asyncio
import time

from langchain_core.embeddings import Embeddings
import structlog

from neuroflow.domain.errors import BackendUnavailable, DimensionMismatch, EmbeddingFailed
from neuroflow.domain.models.memory import MemoryEntry, MemorySearchResult
from neuroflow.infrastructure.observability.logging import cognitive_logger, metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_SEARCH_THRESHOLD = 0.72
CONTEXT_SEARCH_THRESHOLD = 0.70
DEFAULT_TOP_K = 5


class VectorBackend(ABC):
    """Durable row store with similarity-ranked queries"""

    @abstractmethod
    async def insert(self, record: Dict[str, Any]) -> str:
        """Insert a new row and return its id"""
        pass

    @abstractmethod
    async def upsert(self, record: Dict[str, Any]) -> str:
        """Overwrite the row with record["id"], creating it if missing"""
        pass

    @abstractmethod
    async def delete(self, memory_id: str) -> int:
        pass

    @abstractmethod
    async def delete_by_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def query(
        self,
        embedding: List[float],
        user_id: Optional[str],
        threshold: float,
        limit: int
    ) -> List[Dict[str, Any]]:
        """Return rows with a similarity field, best first"""
        pass


class VectorMemoryStore:
    """Embeds, stores and semantically searches prosthetic memories.

    Unlike the semantic cache, every failure here is raised: memory retrieval
    has no safe silent default.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        backend: VectorBackend,
        dimension: int = 768,
        embedding_timeout: float = 10.0,
        store_timeout: float = 5.0
    ):
        self.embeddings = embeddings
        self.backend = backend
        self.dimension = dimension
        self.embedding_timeout = embedding_timeout
        self.store_timeout = store_timeout

    async def embed(self, text: str) -> List[float]:
        """Convert one text into a vector of the configured dimension"""

        if not text or not text.strip():
            raise EmbeddingFailed("Cannot embed empty text")

        started = time.perf_counter()
        try:
            vector = await asyncio.wait_for(
                self.embeddings.aembed_query(text),
                timeout=self.embedding_timeout
            )
        except Exception as e:
            logger.error("Embedding failed", error=repr(e))
            raise EmbeddingFailed(f"Embedding generation failed: {e!r}") from e

        metrics.record_latency("embedding", (time.perf_counter() - started) * 1000)
        vector = [float(x) for x in vector]
        self._check_dimension(vector)
        return vector

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts in one remote call; order is preserved"""

        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise EmbeddingFailed("Cannot embed empty text in batch")

        started = time.perf_counter()
        try:
            vectors = await asyncio.wait_for(
                self.embeddings.aembed_documents(list(texts)),
                timeout=self.embedding_timeout
            )
        except Exception as e:
            logger.error("Batch embedding failed", error=repr(e), batch_size=len(texts))
            raise EmbeddingFailed(f"Batch embedding failed: {e!r}") from e

        if len(vectors) != len(texts):
            raise EmbeddingFailed(
                "Batch embedding returned the wrong number of vectors",
                {"expected": len(texts), "actual": len(vectors)}
            )

        metrics.record_latency("embedding_batch", (time.perf_counter() - started) * 1000)
        vectors = [[float(x) for x in vector] for vector in vectors]
        for vector in vectors:
            self._check_dimension(vector)
        return vectors

    async def upsert(self, entry: MemoryEntry) -> str:
        """Store one memory, embedding its content first when needed"""

        if entry.embedding is None:
            embedding = await self.embed(entry.content)
        else:
            embedding = [float(x) for x in entry.embedding]
            self._check_dimension(embedding)

        memory_id = await self._write(entry.model_copy(update={"embedding": embedding}).to_record())
        cognitive_logger.log_memory_operation("upsert", user_id=entry.user_id, count=1)
        return memory_id

    async def upsert_batch(self, entries: Sequence[MemoryEntry]) -> List[str]:
        """Store several memories with a single embedding call for those lacking vectors"""

        if not entries:
            return []

        # Reject any bad vector before spending an embedding call or writing rows
        for entry in entries:
            if entry.embedding is not None:
                self._check_dimension(entry.embedding)

        pending = [index for index, entry in enumerate(entries) if entry.embedding is None]
        vectors = await self.embed_batch([entries[index].content for index in pending])
        embedded = dict(zip(pending, vectors))

        records = [
            entry.model_copy(update={"embedding": embedded.get(index, entry.embedding)}).to_record()
            for index, entry in enumerate(entries)
        ]

        ids = []
        for record in records:
            ids.append(await self._write(record))

        cognitive_logger.log_memory_operation(
            "upsert_batch",
            count=len(ids),
            details={"embedded": len(pending)}
        )
        return ids

    async def search(
        self,
        query: str,
        user_id: Optional[str] = None,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
        top_k: int = DEFAULT_TOP_K
    ) -> List[MemorySearchResult]:
        """Rank stored memories by cosine similarity to the query"""

        if not query or not query.strip() or top_k <= 0:
            return []

        query_embedding = await self.embed(query)

        rows = await self._call_backend(
            self.backend.query(query_embedding, user_id, threshold, top_k),
            "query"
        )

        results = [MemorySearchResult(**row) for row in rows]
        results = [result for result in results if result.similarity >= threshold]
        results.sort(key=lambda result: result.similarity, reverse=True)
        results = results[:top_k]

        cognitive_logger.log_memory_operation(
            "search",
            user_id=user_id,
            count=len(results),
            details={"threshold": threshold, "top_k": top_k}
        )
        return results

    async def search_content_only(
        self,
        query: str,
        user_id: Optional[str] = None,
        top_k: int = DEFAULT_TOP_K
    ) -> List[str]:
        """Search with the looser context threshold and return raw contents"""

        results = await self.search(query, user_id, CONTEXT_SEARCH_THRESHOLD, top_k)
        return [result.content for result in results]

    async def delete(self, memory_id: str) -> int:
        """Hard-delete one memory"""

        deleted = await self._call_backend(self.backend.delete(memory_id), "delete")
        cognitive_logger.log_memory_operation("delete", count=deleted, details={"memory_id": memory_id})
        return deleted

    async def delete_all_for_user(self, user_id: str) -> int:
        """Hard-delete every memory of a user (account deletion cascade)"""

        deleted = await self._call_backend(self.backend.delete_by_user(user_id), "delete_by_user")
        cognitive_logger.log_memory_operation("delete_all_for_user", user_id=user_id, count=deleted)
        return deleted

    async def _write(self, record: Dict[str, Any]) -> str:
        if record.get("id"):
            return await self._call_backend(self.backend.upsert(record), "upsert")

        record = {key: value for key, value in record.items() if key != "id"}
        return await self._call_backend(self.backend.insert(record), "insert")

    async def _call_backend(self, call: Awaitable[T], operation: str) -> T:
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(call, timeout=self.store_timeout)
        except Exception as e:
            logger.error("Vector store call failed", operation=operation, error=repr(e))
            raise BackendUnavailable(
                f"Vector store {operation} failed: {e!r}",
                {"operation": operation}
            ) from e

        metrics.record_latency(f"vector_store.{operation}", (time.perf_counter() - started) * 1000)
        return result

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            logger.error(
                "Embedding dimension mismatch",
                expected=self.dimension,
                actual=len(vector)
            )
            raise DimensionMismatch(self.dimension, len(vector))
