from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import time
import uuid

import structlog

from neuroflow.domain.context.memory.runtime_memory import CommunicationBuffer
from neuroflow.domain.errors import CognitiveCoreError, ErrorKind, InputInvalid
from neuroflow.domain.models.action import (
    ActionRequest,
    ActionResult,
    ActionStatus,
    ActionType,
    decode_action_request,
    is_known_action_type,
)
from neuroflow.domain.models.cognitive_state import CognitiveState, IntentType, SideEffectIntent
from neuroflow.domain.orchestration.executors.base_executor import BaseExecutor
from neuroflow.domain.orchestration.executors.fallbacks import (
    BREATHING_BUFFER_MINUTES,
    BUFFERED_MESSAGE,
    IGNORED_MESSAGE,
    INTERVENTION_MESSAGE,
    INVALID_REQUEST_MESSAGE,
)
from neuroflow.infrastructure.observability.logging import cognitive_logger, metrics

logger = structlog.get_logger(__name__)

StateReader = Callable[[str], CognitiveState]
Predicate = Callable[[ActionRequest, CognitiveState], bool]
ResultBuilder = Callable[[ActionRequest, CognitiveState], Awaitable[ActionResult]]


@dataclass(slots=True, frozen=True)
class PolicyRule:
    """One row of the routing table; the first rule whose predicate holds builds the result"""

    name: str
    predicate: Predicate
    builder: ResultBuilder


class ActionRouter:
    """
    Arbitrates action requests against the user's current cognitive state.

    The router only reads state. Protective policies short-circuit before any
    backend call; everything else goes to the executor registered for the
    request type. Failures never escape as exceptions: they become `error`
    results carrying the executor's static fallback payload.
    """

    def __init__(
        self,
        state_reader: StateReader,
        buffer: Optional[CommunicationBuffer] = None,
        executors: Optional[List[BaseExecutor]] = None
    ):
        self.state_reader = state_reader
        self.buffer = buffer or CommunicationBuffer()
        self.executors: Dict[ActionType, BaseExecutor] = {}
        for executor in executors or []:
            self.register_executor(executor)
        self.policies = self._build_policies()

    def register_executor(self, executor: BaseExecutor):
        self.executors[executor.action_type] = executor
        logger.info("Registered executor", executor=executor.name, action_type=executor.action_type.value)

    def _build_policies(self) -> List[PolicyRule]:
        return [
            PolicyRule(
                name="overload_blocks_tasks",
                predicate=lambda request, state: (
                    request.type == ActionType.INITIATE_TASK and state == CognitiveState.OVERLOAD
                ),
                builder=self._intervene
            ),
            PolicyRule(
                name="hyperfocus_buffers_communication",
                predicate=lambda request, state: (
                    request.type == ActionType.PROCESS_COMMUNICATION and state == CognitiveState.HYPERFOCUS
                ),
                builder=self._buffer
            ),
            PolicyRule(
                name="dispatch_to_executor",
                predicate=lambda request, state: True,
                builder=self._dispatch
            ),
        ]

    async def route(self, user_id: str, request: Union[ActionRequest, Dict[str, Any]]) -> ActionResult:
        """Route one request; always returns a result"""

        started = time.perf_counter()
        action_type = request.get("type") if isinstance(request, dict) else request.type
        action_name = getattr(action_type, "value", action_type)

        if isinstance(request, dict):
            if not is_known_action_type(action_type):
                result = ActionResult(status=ActionStatus.IGNORED, message=IGNORED_MESSAGE)
                self._log(user_id, action_name, result, "unknown_type", started)
                return result
            try:
                request = decode_action_request(request)
            except InputInvalid as e:
                result = self._invalid(e)
                self._log(user_id, action_name, result, "validation", started)
                return result

        if request.user_id != user_id:
            result = self._invalid(InputInvalid(
                "Request user does not match the routed user",
                {"user_id": user_id, "request_user_id": request.user_id}
            ))
            self._log(user_id, action_name, result, "validation", started)
            return result

        # Stale users are treated as normal
        state = self.state_reader(user_id).effective

        for policy in self.policies:
            if policy.predicate(request, state):
                result = await policy.builder(request, state)
                self._log(user_id, action_name, result, policy.name, started)
                return result

        result = ActionResult(status=ActionStatus.IGNORED, message=IGNORED_MESSAGE)
        self._log(user_id, action_name, result, None, started)
        return result

    async def _intervene(self, request: ActionRequest, state: CognitiveState) -> ActionResult:
        intent = SideEffectIntent(
            user_id=request.user_id,
            intent=IntentType.START_RECOVERY_PROTOCOL,
            actuator="ui",
            parameters={"breathing_minutes": BREATHING_BUFFER_MINUTES, "blocked_action": request.type.value},
            dedupe_key=uuid.uuid4().hex
        )
        return ActionResult(
            status=ActionStatus.INTERVENTION,
            message=INTERVENTION_MESSAGE,
            side_effects=(intent,)
        )

    async def _buffer(self, request: ActionRequest, state: CognitiveState) -> ActionResult:
        queued = await self.buffer.append(request.user_id, request.payload.model_dump(mode="json"))
        return ActionResult(
            status=ActionStatus.BUFFERED,
            message=BUFFERED_MESSAGE,
            data={"buffered_count": queued}
        )

    async def _dispatch(self, request: ActionRequest, state: CognitiveState) -> ActionResult:
        executor = self.executors.get(request.type)
        if executor is None:
            return ActionResult(status=ActionStatus.IGNORED, message=IGNORED_MESSAGE)

        try:
            return await executor.execute(request, state)
        except CognitiveCoreError as e:
            logger.warning("Executor failed, using fallback", executor=executor.name, error_kind=e.kind.value, error=e.message)
            error_kind = e.kind
        except Exception as e:
            logger.exception("Executor raised unexpectedly, using fallback", executor=executor.name, error=repr(e))
            error_kind = ErrorKind.BACKEND_UNAVAILABLE

        return ActionResult(
            status=ActionStatus.ERROR,
            message=executor.failure_message,
            data=executor.fallback(request),
            fallback=True,
            error_kind=error_kind
        )

    def _invalid(self, error: InputInvalid) -> ActionResult:
        return ActionResult(
            status=ActionStatus.ERROR,
            message=INVALID_REQUEST_MESSAGE,
            data=error.details,
            error_kind=ErrorKind.INPUT_INVALID
        )

    def _log(self, user_id: str, action_type: Any, result: ActionResult, policy: Optional[str], started: float):
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency("route_action", duration_ms, tags={"status": result.status.value})
        metrics.increment_counter(f"actions.{result.status.value}")
        cognitive_logger.log_action_routed(
            user_id=user_id,
            action_type=str(action_type),
            status=result.status.value,
            policy=policy,
            duration_ms=round(duration_ms, 2),
            fallback=result.fallback,
            error_kind=result.error_kind.value if result.error_kind else None
        )
