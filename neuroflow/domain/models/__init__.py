from neuroflow.domain.models.action import (
    ActionRequest,
    ActionResult,
    ActionStatus,
    ActionType,
    CommunicationPayload,
    InitiateTaskRequest,
    MeetingPayload,
    ProcessCommunicationRequest,
    ScheduleMeetingRequest,
    TaskPayload,
    decode_action_request,
)
from neuroflow.domain.models.cognitive_state import (
    ClassificationResult,
    CognitiveState,
    IntentType,
    SideEffectIntent,
    SignalName,
    StateTransition,
    TelemetrySample,
    UserStateSnapshot,
)
from neuroflow.domain.models.memory import MemoryEntry, MemorySearchResult

__all__ = [
    "ActionRequest",
    "ActionResult",
    "ActionStatus",
    "ActionType",
    "ClassificationResult",
    "CognitiveState",
    "CommunicationPayload",
    "InitiateTaskRequest",
    "IntentType",
    "MeetingPayload",
    "MemoryEntry",
    "MemorySearchResult",
    "ProcessCommunicationRequest",
    "ScheduleMeetingRequest",
    "SideEffectIntent",
    "SignalName",
    "StateTransition",
    "TaskPayload",
    "TelemetrySample",
    "UserStateSnapshot",
    "decode_action_request",
]
