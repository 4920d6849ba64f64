from datetime import timedelta
from typing import Any, Dict
import hashlib

import structlog

from neuroflow.domain.models.action import (
    ActionResult,
    ActionStatus,
    ActionType,
    ScheduleMeetingRequest,
)
from neuroflow.domain.models.cognitive_state import CognitiveState, IntentType, SideEffectIntent
from neuroflow.domain.orchestration.executors.base_executor import BaseExecutor
from neuroflow.domain.orchestration.executors.fallbacks import (
    MEETING_FAILURE_MESSAGE,
    MEETING_SUCCESS_MESSAGE,
    RECOVERY_BLOCK_MINUTES,
)

logger = structlog.get_logger(__name__)


def _block_key(user_id: str, kind: str, start: str) -> str:
    return hashlib.sha256(f"{user_id}\x00{kind}\x00{start}".encode("utf-8")).hexdigest()[:32]


class MeetingExecutor(BaseExecutor):
    """Requests calendar blocks; a recovery block follows when load is rising"""

    action_type = ActionType.SCHEDULE_MEETING
    failure_message = MEETING_FAILURE_MESSAGE

    def __init__(self, recovery_minutes: int = RECOVERY_BLOCK_MINUTES):
        super().__init__(
            name="meeting_executor",
            description="Turns meeting requests into calendar block intents"
        )
        self.recovery_minutes = recovery_minutes

    async def execute(self, request: ScheduleMeetingRequest, state: CognitiveState) -> ActionResult:
        self.update_activity()

        payload = request.payload
        end = payload.start + timedelta(minutes=payload.duration_minutes)

        intents = [SideEffectIntent(
            user_id=request.user_id,
            intent=IntentType.INSERT_CALENDAR_BLOCK,
            actuator="calendar",
            parameters={
                "title": payload.title,
                "start": payload.start.isoformat(),
                "end": end.isoformat(),
                "attendees": list(payload.attendees),
                "kind": "meeting"
            },
            dedupe_key=_block_key(request.user_id, "meeting", payload.start.isoformat())
        )]

        if state == CognitiveState.APPROACHING_OVERLOAD:
            recovery_end = end + timedelta(minutes=self.recovery_minutes)
            intents.append(SideEffectIntent(
                user_id=request.user_id,
                intent=IntentType.INSERT_CALENDAR_BLOCK,
                actuator="calendar",
                parameters={
                    "title": "Recovery buffer",
                    "start": end.isoformat(),
                    "end": recovery_end.isoformat(),
                    "attendees": [],
                    "kind": "recovery"
                },
                dedupe_key=_block_key(request.user_id, "recovery", end.isoformat())
            ))

        logger.info("Meeting scheduled", user_id=request.user_id, blocks=len(intents), state=state.value)

        return ActionResult(
            status=ActionStatus.SUCCESS,
            message=MEETING_SUCCESS_MESSAGE,
            data={"start": payload.start.isoformat(), "end": end.isoformat(), "recovery_block": len(intents) > 1},
            side_effects=tuple(intents)
        )

    def fallback(self, request: ScheduleMeetingRequest) -> Dict[str, Any]:
        return {"scheduled": False}
