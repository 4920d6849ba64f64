from typing import Any, Dict, List, Optional, TypedDict

from langgraph.graph import StateGraph, END
from pydantic import BaseModel, Field, ValidationError
import structlog

from neuroflow.domain.context.memory.cache_memory_store import SemanticCache
from neuroflow.domain.context.memory.vector_memory_store import VectorMemoryStore
from neuroflow.domain.errors import SanitizationFailed
from neuroflow.domain.generation.generation_client import GenerationClient
from neuroflow.domain.generation.response_sanitizer import ResponseSanitizer
from neuroflow.domain.models.action import (
    ActionResult,
    ActionStatus,
    ActionType,
    ProcessCommunicationRequest,
)
from neuroflow.domain.models.cognitive_state import CognitiveState
from neuroflow.domain.orchestration.executors.base_executor import GenerativeExecutor
from neuroflow.domain.orchestration.executors.fallbacks import (
    COMMUNICATION_FAILURE_MESSAGE,
    COMMUNICATION_SUCCESS_MESSAGE,
    communication_fallback,
)

logger = structlog.get_logger(__name__)

RECALL_TOP_K = 3

TRANSLATION_PROMPT = """You are an Unmasking Proxy for a neurodivergent professional.
Your user prefers highly literal, blunt, and direct communication, but this often causes friction in neurotypical corporate environments.
Take their blunt input and translate it into warm, polite, "neurotypical-compliant" corporate communication.
{context_block}
Output strictly as JSON:
{{
  "translated_text": "The polite, ready-to-send corporate version",
  "tone_adjustments": ["Briefly list what you softened"],
  "masking_energy_saved_minutes": <integer, usually 5-15>
}}

Blunt Input: "{text}"
"""

CONTEXT_BLOCK = """
Context retrieved from the user's memory (use it only if relevant):
{memories}
"""


class Translation(BaseModel):
    translated_text: str = Field(min_length=1)
    tone_adjustments: List[str] = Field(default_factory=list)
    masking_energy_saved_minutes: int = Field(default=0, ge=0)


def shape_translation(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SanitizationFailed("Translation is not a JSON object")
    try:
        return Translation.model_validate(value).model_dump()
    except ValidationError as e:
        raise SanitizationFailed(
            "Translation has malformed fields",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e


class TranslationState(TypedDict):
    """State for the translation graph"""
    user_id: str
    text: str
    recall: bool
    memories: List[str]
    translation: Optional[Dict[str, Any]]
    cached: bool


class CommunicationExecutor(GenerativeExecutor):
    """Translates blunt messages, optionally grounded in recalled memories"""

    action_type = ActionType.PROCESS_COMMUNICATION
    context_tag = "communication_translation"
    failure_message = COMMUNICATION_FAILURE_MESSAGE

    def __init__(
        self,
        generation: GenerationClient,
        cache: SemanticCache,
        sanitizer: ResponseSanitizer,
        memory: Optional[VectorMemoryStore] = None
    ):
        super().__init__(
            name="communication_executor",
            description="Rewrites outbound messages into a softer register",
            generation=generation,
            cache=cache,
            sanitizer=sanitizer
        )
        self.memory = memory
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(TranslationState)

        workflow.add_node("recall_context", self.recall_context_node)
        workflow.add_node("translate", self.translate_node)

        workflow.set_entry_point("recall_context")
        workflow.add_edge("recall_context", "translate")
        workflow.add_edge("translate", END)

        return workflow.compile()

    async def recall_context_node(self, state: TranslationState) -> Dict[str, Any]:
        """Look up related memories; a failed lookup only loses context"""

        if not state["recall"] or self.memory is None:
            return {"memories": []}

        try:
            memories = await self.memory.search_content_only(
                state["text"],
                user_id=state["user_id"],
                top_k=RECALL_TOP_K
            )
        except Exception as e:
            logger.warning("Memory recall failed, translating without context", user_id=state["user_id"], error=repr(e))
            return {"memories": []}

        logger.debug("Recalled memories", user_id=state["user_id"], count=len(memories))
        return {"memories": memories}

    async def translate_node(self, state: TranslationState) -> Dict[str, Any]:
        prompt = self.build_prompt(state["text"], state["memories"])
        translation, cached = await self.generate_structured(prompt, shape_translation)
        return {"translation": translation, "cached": cached}

    def build_prompt(self, text: str, memories: List[str]) -> str:
        context_block = ""
        if memories:
            context_block = CONTEXT_BLOCK.format(memories="\n".join(f"- {memory}" for memory in memories))
        return TRANSLATION_PROMPT.format(context_block=context_block, text=text.strip()).strip()

    async def execute(self, request: ProcessCommunicationRequest, state: CognitiveState) -> ActionResult:
        self.update_activity()

        final_state = await self.workflow.ainvoke({
            "user_id": request.user_id,
            "text": request.payload.text,
            "recall": request.payload.recall_context,
            "memories": [],
            "translation": None,
            "cached": False
        })

        logger.info(
            "Communication translated",
            user_id=request.user_id,
            memories=len(final_state["memories"]),
            cached=final_state["cached"]
        )

        return ActionResult(
            status=ActionStatus.SUCCESS,
            message=COMMUNICATION_SUCCESS_MESSAGE,
            data=final_state["translation"],
            cached=final_state["cached"]
        )

    def fallback(self, request: ProcessCommunicationRequest) -> Dict[str, Any]:
        return communication_fallback(request.payload.text)
