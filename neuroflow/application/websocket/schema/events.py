from typing import Dict, Any, Optional, Literal
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from neuroflow.domain.models.cognitive_state import ClassificationResult, utcnow


class EventType(str, Enum):
    """WebSocket event types"""
    TELEMETRY = "telemetry"
    CLASSIFICATION = "classification"
    DASHBOARD_UPDATE = "dashboard_update"
    ERROR = "error"
    CONNECTION = "connection"


class BaseEvent(BaseModel):
    """Base event model for all WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=utcnow)


class TelemetryMessage(BaseEvent):
    """Telemetry sample pushed by the browser monitor"""
    type: Literal[EventType.TELEMETRY] = EventType.TELEMETRY
    signals: Dict[str, Any] = Field(default_factory=dict)
    captured_at: Optional[datetime] = None


class ClassificationEvent(BaseEvent):
    """Classification result sent back to the sample's owner"""
    type: Literal[EventType.CLASSIFICATION] = EventType.CLASSIFICATION
    payload: ClassificationResult


class DashboardPayload(BaseModel):
    """Anonymized update; never carries the user id"""
    score: float
    classification: str
    transitioned: bool = False


class DashboardEvent(BaseEvent):
    """Anonymized update broadcast to dashboard subscribers"""
    type: Literal[EventType.DASHBOARD_UPDATE] = EventType.DASHBOARD_UPDATE
    payload: DashboardPayload

    @classmethod
    def from_result(cls, result: ClassificationResult) -> "DashboardEvent":
        return cls(payload=DashboardPayload(**result.get_summary()))


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected"]
    role: Literal["telemetry", "dashboard"]
