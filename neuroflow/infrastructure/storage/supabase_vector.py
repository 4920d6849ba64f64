"""
Supabase pgvector backend for prosthetic memory.

Required SQL (run once):

    CREATE EXTENSION IF NOT EXISTS vector;

    CREATE TABLE public.memory_entries (
      id         UUID DEFAULT gen_random_uuid() PRIMARY KEY,
      user_id    TEXT NOT NULL,
      content    TEXT NOT NULL,
      summary    TEXT,
      metadata   JSONB DEFAULT '{}'::jsonb,
      embedding  vector(768),
      created_at TIMESTAMPTZ DEFAULT now() NOT NULL
    );

    CREATE INDEX ON public.memory_entries
      USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100);

    CREATE OR REPLACE FUNCTION match_documents(
      query_embedding vector(768),
      match_threshold float DEFAULT 0.72,
      match_count     int   DEFAULT 5,
      filter_user_id  text  DEFAULT NULL
    )
    RETURNS TABLE (id uuid, user_id text, content text, summary text, metadata jsonb, similarity float)
    LANGUAGE plpgsql
    AS $$
    BEGIN
      RETURN QUERY
      SELECT me.id, me.user_id, me.content, me.summary, me.metadata,
             1 - (me.embedding <=> query_embedding) AS similarity
      FROM public.memory_entries me
      WHERE (filter_user_id IS NULL OR me.user_id = filter_user_id)
        AND 1 - (me.embedding <=> query_embedding) >= match_threshold
      ORDER BY me.embedding <=> query_embedding
      LIMIT match_count;
    END;
    $$;
"""

from typing import Any, Dict, List, Optional
import asyncio

from supabase import Client, create_client
import structlog

from neuroflow.domain.context.memory.vector_memory_store import VectorBackend

logger = structlog.get_logger(__name__)

MATCH_FUNCTION = "match_documents"


class SupabaseVectorBackend(VectorBackend):
    """Vector rows in a Supabase table; the sync client runs in a worker thread"""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        table: str = "memory_entries",
        client: Optional[Client] = None
    ):
        if client is None:
            if not url or not key:
                raise ValueError("Supabase URL and key are required")
            client = create_client(url, key)
            logger.info("Supabase client initialized", table=table)

        self.client = client
        self.table = table

    async def insert(self, record: Dict[str, Any]) -> str:
        response = await asyncio.to_thread(
            lambda: self.client.table(self.table).insert(record).execute()
        )
        return str(response.data[0]["id"])

    async def upsert(self, record: Dict[str, Any]) -> str:
        response = await asyncio.to_thread(
            lambda: self.client.table(self.table).upsert(record).execute()
        )
        return str(response.data[0]["id"])

    async def delete(self, memory_id: str) -> int:
        response = await asyncio.to_thread(
            lambda: self.client.table(self.table).delete(count="exact").eq("id", memory_id).execute()
        )
        return response.count if response.count is not None else len(response.data or [])

    async def delete_by_user(self, user_id: str) -> int:
        response = await asyncio.to_thread(
            lambda: self.client.table(self.table).delete(count="exact").eq("user_id", user_id).execute()
        )
        return response.count if response.count is not None else len(response.data or [])

    async def query(
        self,
        embedding: List[float],
        user_id: Optional[str],
        threshold: float,
        limit: int
    ) -> List[Dict[str, Any]]:
        params = {
            "query_embedding": embedding,
            "match_threshold": threshold,
            "match_count": limit,
            "filter_user_id": user_id
        }
        response = await asyncio.to_thread(
            lambda: self.client.rpc(MATCH_FUNCTION, params).execute()
        )

        rows = []
        for row in response.data or []:
            rows.append({
                "id": str(row["id"]),
                "user_id": row.get("user_id", user_id),
                "content": row["content"],
                "summary": row.get("summary"),
                "metadata": row.get("metadata") or {},
                "similarity": float(row["similarity"])
            })
        return rows
