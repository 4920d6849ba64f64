from typing import Any, Callable, Dict, List, Optional
import asyncio
import time
import uuid

import numpy as np

from neuroflow.domain.context.memory.cache_memory_store import KeyValueStore
from neuroflow.domain.context.memory.vector_memory_store import VectorBackend


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory key-value store with TTL support"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.clock = clock
        self._lock = asyncio.Lock()

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set a value with TTL"""

        async with self._lock:
            self.cache[key] = {
                "value": value,
                "expires_at": self.clock() + ttl_seconds
            }

    async def get(self, key: str) -> Optional[str]:
        """Get value if not expired"""

        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                return None

            if self.clock() >= entry["expires_at"]:
                del self.cache[key]
                return None

            return entry["value"]

    async def clear_expired(self) -> int:
        """Clear expired entries and return count"""

        async with self._lock:
            now = self.clock()
            expired_keys = [
                key for key, entry in self.cache.items()
                if now >= entry["expires_at"]
            ]

            for key in expired_keys:
                del self.cache[key]

            return len(expired_keys)

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        async with self._lock:
            now = self.clock()
            active_count = sum(
                1 for entry in self.cache.values()
                if now < entry["expires_at"]
            )

            return {
                "total_keys": len(self.cache),
                "active_keys": active_count,
                "expired_keys": len(self.cache) - active_count
            }


class InMemoryVectorBackend(VectorBackend):
    """Process-local vector rows ranked by exact cosine similarity"""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: Dict[str, Any]) -> str:
        async with self._lock:
            memory_id = record.get("id") or str(uuid.uuid4())
            self.rows[memory_id] = {**record, "id": memory_id}
            return memory_id

    async def upsert(self, record: Dict[str, Any]) -> str:
        async with self._lock:
            memory_id = record["id"]
            existing = self.rows.get(memory_id, {})
            self.rows[memory_id] = {**existing, **record}
            return memory_id

    async def delete(self, memory_id: str) -> int:
        async with self._lock:
            return 1 if self.rows.pop(memory_id, None) is not None else 0

    async def delete_by_user(self, user_id: str) -> int:
        async with self._lock:
            doomed = [memory_id for memory_id, row in self.rows.items() if row.get("user_id") == user_id]
            for memory_id in doomed:
                del self.rows[memory_id]
            return len(doomed)

    async def query(
        self,
        embedding: List[float],
        user_id: Optional[str],
        threshold: float,
        limit: int
    ) -> List[Dict[str, Any]]:
        async with self._lock:
            candidates = [
                row for row in self.rows.values()
                if row.get("embedding") is not None and (user_id is None or row.get("user_id") == user_id)
            ]

        if not candidates or limit <= 0:
            return []

        query_vector = np.asarray(embedding, dtype=np.float64)
        matrix = np.asarray([row["embedding"] for row in candidates], dtype=np.float64)

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, matrix @ query_vector / norms, 0.0)

        ranked = np.argsort(-similarities, kind="stable")
        matches = []
        for index in ranked:
            similarity = float(similarities[index])
            if similarity < threshold:
                break
            row = candidates[index]
            matches.append({
                "id": row["id"],
                "user_id": row.get("user_id"),
                "content": row["content"],
                "summary": row.get("summary"),
                "metadata": row.get("metadata") or {},
                "similarity": similarity
            })
            if len(matches) >= limit:
                break

        return matches

    async def count(self) -> int:
        async with self._lock:
            return len(self.rows)
