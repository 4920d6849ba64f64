from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from neuroflow.domain.models.cognitive_state import utcnow


SUMMARY_LENGTH = 200


class MemoryEntry(BaseModel):
    """A durable prosthetic memory row"""
    id: Optional[str] = Field(None, description="Set to overwrite an existing row")
    user_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    summary: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    embedding: Optional[List[float]] = Field(None, description="Auto-embedded from content when absent")
    created_at: datetime = Field(default_factory=utcnow)

    def to_record(self) -> Dict[str, Any]:
        """Row shape written to the vector backend"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content": self.content,
            "summary": self.summary or self.content[:SUMMARY_LENGTH],
            "metadata": self.metadata,
            "embedding": self.embedding,
            "created_at": self.created_at.isoformat()
        }


class MemorySearchResult(BaseModel):
    """A ranked memory match"""
    id: str
    user_id: Optional[str] = None
    content: str
    summary: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity: float
