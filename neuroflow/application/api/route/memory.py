from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from neuroflow.application.api.dependencies import get_core
from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.domain.context.memory.vector_memory_store import DEFAULT_SEARCH_THRESHOLD, DEFAULT_TOP_K
from neuroflow.domain.models.memory import MemoryEntry, MemorySearchResult

router = APIRouter(tags=["memory"])

CoreDep = Annotated[CognitiveCore, Depends(get_core)]


class MemoryBatchRequest(BaseModel):
    entries: List[MemoryEntry] = Field(min_length=1, max_length=500)


@router.post("/memory", status_code=201)
async def remember(entry: MemoryEntry, core: CoreDep) -> Dict[str, str]:
    return {"id": await core.remember_memory(entry)}


@router.post("/memory/batch", status_code=201)
async def remember_batch(request: MemoryBatchRequest, core: CoreDep) -> Dict[str, List[str]]:
    return {"ids": await core.remember_memories(request.entries)}


@router.get("/memory/search", response_model=List[MemorySearchResult])
async def search_memory(
    core: CoreDep,
    query: str = Query(..., description="Natural language search query"),
    user_id: Optional[str] = None,
    top_k: int = Query(DEFAULT_TOP_K, ge=1, le=50),
    threshold: float = Query(DEFAULT_SEARCH_THRESHOLD, ge=-1.0, le=1.0)
):
    return await core.recall_memory(query, user_id=user_id, top_k=top_k, threshold=threshold)


@router.delete("/memory/{memory_id}")
async def forget_memory(memory_id: str, core: CoreDep) -> Dict[str, int]:
    return {"deleted": await core.forget_memory(memory_id)}


@router.delete("/users/{user_id}")
async def forget_user(user_id: str, core: CoreDep) -> Dict[str, Any]:
    return await core.forget_user(user_id)
