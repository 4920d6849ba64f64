from typing import Any, Dict, List, Optional, Union
import re

from pydantic import BaseModel, Field, ValidationError
import structlog

from neuroflow.domain.context.memory.cache_memory_store import SemanticCache
from neuroflow.domain.errors import SanitizationFailed
from neuroflow.domain.generation.generation_client import GenerationClient
from neuroflow.domain.generation.response_sanitizer import ResponseSanitizer
from neuroflow.domain.models.action import ActionResult, ActionStatus, ActionType, InitiateTaskRequest
from neuroflow.domain.models.cognitive_state import CognitiveState
from neuroflow.domain.orchestration.executors.base_executor import GenerativeExecutor
from neuroflow.domain.orchestration.executors.fallbacks import (
    TASK_FAILURE_MESSAGE,
    TASK_SUCCESS_MESSAGE,
    task_fallback_steps,
)

logger = structlog.get_logger(__name__)

TASK_PROMPT = """You are an executive function augmentation engine designed to bypass task paralysis for neurodivergent users.

Break the following task into exactly 5-7 sequential micro-steps. Each step MUST be completable in 5 minutes or less.
The FIRST step must be trivially easy, with no cognitive friction at all (e.g., "Open a blank document").
The whole plan should fit in roughly {estimated_minutes} minutes.

STRICT JSON output only:
[
  {{
    "id": "unique-slug-id",
    "step": "The precise, physical micro-action",
    "estimated_minutes": <number 1-5>,
    "friction_point": "<3-word reason this feels hard>"
  }}
]

Task: "{description}"
"""


class MicroStep(BaseModel):
    id: Optional[Union[str, int]] = None
    step: str = Field(min_length=1)
    estimated_minutes: int = Field(default=5, ge=1)
    friction_point: str = ""


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:40] or "step"


def shape_steps(value: Any) -> List[Dict[str, Any]]:
    """Accept a bare array or an object wrapping it under "steps" """

    if isinstance(value, dict) and isinstance(value.get("steps"), list):
        value = value["steps"]
    if not isinstance(value, list) or not value:
        raise SanitizationFailed("Task decomposition is not a non-empty array")

    try:
        steps = [MicroStep.model_validate(item) for item in value]
    except ValidationError as e:
        raise SanitizationFailed(
            "Task decomposition has malformed steps",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e

    shaped = []
    for index, step in enumerate(steps, start=1):
        data = step.model_dump()
        data["id"] = str(step.id) if step.id not in (None, "") else f"{index}-{_slug(step.step)}"
        shaped.append(data)
    return shaped


class TaskExecutor(GenerativeExecutor):
    """Breaks a task into 5 to 7 micro-steps"""

    action_type = ActionType.INITIATE_TASK
    context_tag = "task_decomposition"
    failure_message = TASK_FAILURE_MESSAGE

    def __init__(self, generation: GenerationClient, cache: SemanticCache, sanitizer: ResponseSanitizer):
        super().__init__(
            name="task_executor",
            description="Decomposes tasks into short, low-friction steps",
            generation=generation,
            cache=cache,
            sanitizer=sanitizer
        )

    def build_prompt(self, request: InitiateTaskRequest) -> str:
        return TASK_PROMPT.format(
            description=request.payload.description.strip(),
            estimated_minutes=request.payload.estimated_minutes
        ).strip()

    async def execute(self, request: InitiateTaskRequest, state: CognitiveState) -> ActionResult:
        self.update_activity()

        steps, cached = await self.generate_structured(self.build_prompt(request), shape_steps)
        logger.info("Task decomposed", user_id=request.user_id, steps=len(steps), cached=cached)

        return ActionResult(
            status=ActionStatus.SUCCESS,
            message=TASK_SUCCESS_MESSAGE,
            data={"steps": steps},
            cached=cached
        )

    def fallback(self, request: InitiateTaskRequest) -> Dict[str, Any]:
        return {"steps": task_fallback_steps()}
