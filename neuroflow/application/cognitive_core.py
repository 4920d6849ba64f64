from typing import Any, Dict, List, Optional, Sequence, Union
import asyncio

from pydantic import ValidationError
import structlog

from neuroflow.application.actuators.dispatcher import IntentDispatcher
from neuroflow.domain.context.memory.runtime_memory import CommunicationBuffer
from neuroflow.domain.context.memory.vector_memory_store import (
    DEFAULT_SEARCH_THRESHOLD,
    DEFAULT_TOP_K,
    VectorMemoryStore,
)
from neuroflow.domain.errors import InputInvalid
from neuroflow.domain.models.action import ActionRequest, ActionResult
from neuroflow.domain.models.cognitive_state import (
    ClassificationResult,
    StateTransition,
    TelemetrySample,
    UserStateSnapshot,
)
from neuroflow.domain.models.memory import MemoryEntry, MemorySearchResult
from neuroflow.domain.orchestration.core.action_router import ActionRouter
from neuroflow.domain.telemetry.telemetry_classifier import TelemetryClassifier
from neuroflow.domain.triggers.trigger_evaluator import TriggerEvaluator

logger = structlog.get_logger(__name__)


class CognitiveCore:
    """Single entry point wiring classification, triggers, routing and memory together"""

    def __init__(
        self,
        classifier: TelemetryClassifier,
        router: ActionRouter,
        memory: VectorMemoryStore,
        triggers: Optional[TriggerEvaluator] = None,
        dispatcher: Optional[IntentDispatcher] = None,
        sweep_interval: float = 10.0
    ):
        self.classifier = classifier
        self.router = router
        self.memory = memory
        self.triggers = triggers or TriggerEvaluator()
        self.dispatcher = dispatcher or IntentDispatcher()
        self.sweep_interval = sweep_interval
        self._sweeper: Optional[asyncio.Task] = None

        self.classifier.register_transition_handler(self._on_transition)

    @property
    def buffer(self) -> CommunicationBuffer:
        return self.router.buffer

    async def _on_transition(self, transition: StateTransition):
        # Runs under the user's lock; actuators are performed later by the dispatcher outbox
        intents = self.triggers.evaluate(transition)
        if intents:
            self.dispatcher.submit(intents)

    async def ingest_telemetry(self, sample: Union[TelemetrySample, Dict[str, Any]]) -> ClassificationResult:
        """Classify a sample; only a missing user id is rejected"""

        if not isinstance(sample, TelemetrySample):
            try:
                sample = TelemetrySample.model_validate(sample)
            except ValidationError as e:
                raise InputInvalid(
                    "Invalid telemetry sample",
                    {"errors": e.errors(include_url=False, include_context=False)}
                ) from e

        return await self.classifier.ingest(sample)

    async def route_action(self, user_id: str, request: Union[ActionRequest, Dict[str, Any]]) -> ActionResult:
        """Route an action and hand its side effects to the actuator layer"""

        result = await self.router.route(user_id, request)
        if result.side_effects:
            self.dispatcher.submit(result.side_effects)
        return result

    async def remember_memory(self, entry: MemoryEntry) -> str:
        return await self.memory.upsert(entry)

    async def remember_memories(self, entries: Sequence[MemoryEntry]) -> List[str]:
        return await self.memory.upsert_batch(entries)

    async def recall_memory(
        self,
        query: str,
        user_id: Optional[str] = None,
        top_k: int = DEFAULT_TOP_K,
        threshold: float = DEFAULT_SEARCH_THRESHOLD
    ) -> List[MemorySearchResult]:
        return await self.memory.search(query, user_id=user_id, threshold=threshold, top_k=top_k)

    async def forget_memory(self, memory_id: str) -> int:
        return await self.memory.delete(memory_id)

    async def forget_user(self, user_id: str) -> Dict[str, Any]:
        """Delete everything held for a user: memories, state and buffered messages"""

        deleted = await self.memory.delete_all_for_user(user_id)

        async with self.classifier.store.locked(user_id, create=False) as record:
            state_removed = False
            if record is not None:
                state_removed = await self.classifier.store.remove(user_id)

        drained = await self.buffer.drain(user_id)

        logger.info(
            "User forgotten",
            user_id=user_id,
            memories=deleted,
            state_removed=state_removed,
            buffered=len(drained)
        )
        return {
            "memories_deleted": deleted,
            "state_removed": state_removed,
            "buffered_dropped": len(drained)
        }

    async def drain_buffered(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.buffer.drain(user_id)

    def current_state(self, user_id: str) -> UserStateSnapshot:
        snapshot = self.classifier.store.snapshot(user_id)
        if snapshot is None:
            return UserStateSnapshot(user_id=user_id, state=self.classifier.store.get_state(user_id), score=0.0)
        return snapshot

    async def sweep(self) -> Dict[str, int]:
        return await self.classifier.sweep()

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("State sweep failed", error=repr(e))

    def start(self):
        """Start the periodic staleness sweep"""

        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
            logger.info("Started state sweeper", interval=self.sweep_interval)

    async def stop(self):
        await self.dispatcher.flush()
        if self._sweeper is None:
            return

        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Stopped state sweeper")
