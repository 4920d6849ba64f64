from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Tuple

import structlog

from neuroflow.domain.context.memory.cache_memory_store import SemanticCache
from neuroflow.domain.errors import SanitizationFailed
from neuroflow.domain.generation.generation_client import GenerationClient
from neuroflow.domain.generation.response_sanitizer import ResponseSanitizer
from neuroflow.domain.models.action import ActionRequest, ActionResult, ActionType
from neuroflow.domain.models.cognitive_state import CognitiveState, utcnow

logger = structlog.get_logger(__name__)


class BaseExecutor(ABC):
    """Base class for the executors an action type is dispatched to"""

    action_type: ActionType
    failure_message: str = "Action failed."

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description
        self.created_at = utcnow()
        self.last_active = utcnow()

    @abstractmethod
    async def execute(self, request: ActionRequest, state: CognitiveState) -> ActionResult:
        """Run the action; backend problems are raised as core errors"""
        pass

    @abstractmethod
    def fallback(self, request: ActionRequest) -> Any:
        """Static payload returned when execution fails"""
        pass

    def update_activity(self):
        self.last_active = utcnow()

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "action_type": self.action_type.value,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat()
        }


class GenerativeExecutor(BaseExecutor):
    """Executor backed by cached, sanitized generation"""

    context_tag: str

    def __init__(
        self,
        name: str,
        description: str,
        generation: GenerationClient,
        cache: SemanticCache,
        sanitizer: ResponseSanitizer
    ):
        super().__init__(name, description)
        self.generation = generation
        self.cache = cache
        self.sanitizer = sanitizer

    async def generate_structured(self, prompt: str, shape: Callable[[Any], Any]) -> Tuple[Any, bool]:
        """
        Cache lookup, then generation on miss, repair, shape check and cache write.

        `shape` turns the parsed value into the stored payload and raises
        SanitizationFailed when it has the wrong structure. Returns the payload
        and whether it came from the cache.
        """

        cached = await self.cache.get(prompt, self.context_tag)
        if cached is not None:
            return cached, True

        raw = await self.generation.generate(prompt)
        result = self.sanitizer.sanitize(raw)
        if not result.ok:
            logger.warning(
                "Generated output could not be repaired",
                executor=self.name,
                passes=result.attempted_passes
            )
            raise SanitizationFailed(
                "Generated output could not be parsed",
                {"attempted_passes": result.attempted_passes}
            )

        value = shape(result.value)
        await self.cache.put(prompt, self.context_tag, value)
        return value, False
