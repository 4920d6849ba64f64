from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from datetime import datetime
from enum import Enum

from neuroflow.domain.errors import ErrorKind, InputInvalid
from neuroflow.domain.models.cognitive_state import SideEffectIntent


class ActionType(str, Enum):
    """Explicit user or system intents the router accepts"""
    INITIATE_TASK = "initiate_task"
    PROCESS_COMMUNICATION = "process_communication"
    SCHEDULE_MEETING = "schedule_meeting"


class ActionStatus(str, Enum):
    """Routing outcome"""
    SUCCESS = "success"
    BUFFERED = "buffered"
    INTERVENTION = "intervention"
    IGNORED = "ignored"
    ERROR = "error"


class TaskPayload(BaseModel):
    """Task the user wants broken into micro-steps"""
    description: str = Field(min_length=1, max_length=4000)
    estimated_minutes: int = Field(default=30, ge=1, le=24 * 60)


class CommunicationPayload(BaseModel):
    """Outbound message to be translated into a softer register"""
    text: str = Field(min_length=1, max_length=8000)
    channel: Optional[str] = Field(None, description="Source channel, e.g. slack or email")
    recall_context: bool = Field(default=True, description="Look up prosthetic memory before translating")


class MeetingPayload(BaseModel):
    """Calendar block request"""
    title: str = Field(min_length=1, max_length=200)
    start: datetime
    duration_minutes: int = Field(default=30, ge=5, le=8 * 60)
    attendees: List[str] = Field(default_factory=list)


class InitiateTaskRequest(BaseModel):
    type: Literal[ActionType.INITIATE_TASK] = ActionType.INITIATE_TASK
    user_id: str = Field(min_length=1)
    payload: TaskPayload


class ProcessCommunicationRequest(BaseModel):
    type: Literal[ActionType.PROCESS_COMMUNICATION] = ActionType.PROCESS_COMMUNICATION
    user_id: str = Field(min_length=1)
    payload: CommunicationPayload


class ScheduleMeetingRequest(BaseModel):
    type: Literal[ActionType.SCHEDULE_MEETING] = ActionType.SCHEDULE_MEETING
    user_id: str = Field(min_length=1)
    payload: MeetingPayload


ActionRequest = Annotated[
    Union[InitiateTaskRequest, ProcessCommunicationRequest, ScheduleMeetingRequest],
    Field(discriminator="type")
]

_action_request_adapter = TypeAdapter(ActionRequest)


def is_known_action_type(value: Any) -> bool:
    return value in {action_type.value for action_type in ActionType}


def decode_action_request(data: Dict[str, Any]) -> ActionRequest:
    """Validate a raw request body into its typed variant"""

    try:
        return _action_request_adapter.validate_python(data)
    except ValidationError as e:
        raise InputInvalid(
            "Invalid action request",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e


class ActionResult(BaseModel):
    """Immutable outcome returned to the caller"""
    model_config = ConfigDict(frozen=True)

    status: ActionStatus
    message: str
    data: Optional[Any] = None
    side_effects: Tuple[SideEffectIntent, ...] = ()
    fallback: bool = Field(default=False, description="True when data is static fallback content")
    error_kind: Optional[ErrorKind] = None
    cached: bool = False
