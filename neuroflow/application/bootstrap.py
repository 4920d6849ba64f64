from typing import Optional

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
import structlog

from neuroflow.application.actuators.dispatcher import IntentDispatcher
from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.domain.context.memory.cache_memory_store import KeyValueStore, SemanticCache
from neuroflow.domain.context.memory.runtime_memory import CommunicationBuffer
from neuroflow.domain.context.memory.vector_memory_store import VectorBackend, VectorMemoryStore
from neuroflow.domain.context.state.state_manager import CognitiveStateStore
from neuroflow.domain.generation.generation_client import GenerationClient
from neuroflow.domain.generation.response_sanitizer import ResponseSanitizer
from neuroflow.domain.orchestration.core.action_router import ActionRouter
from neuroflow.domain.orchestration.executors.communication_executor import CommunicationExecutor
from neuroflow.domain.orchestration.executors.meeting_executor import MeetingExecutor
from neuroflow.domain.orchestration.executors.task_executor import TaskExecutor
from neuroflow.domain.telemetry.telemetry_classifier import TelemetryClassifier
from neuroflow.domain.triggers.trigger_evaluator import TriggerEvaluator
from neuroflow.infrastructure.config.settings import Settings, get_settings
from neuroflow.infrastructure.llm.model_factory import build_chat_model, build_embeddings
from neuroflow.infrastructure.observability.langfuse_tracing import configure_tracing
from neuroflow.infrastructure.storage.in_memory import InMemoryKeyValueStore, InMemoryVectorBackend

logger = structlog.get_logger(__name__)


def build_kv_store(settings: Settings) -> KeyValueStore:
    if settings.redis_url:
        from neuroflow.infrastructure.storage.redis_kv import RedisKeyValueStore
        return RedisKeyValueStore(settings.redis_url)

    logger.info("Redis URL not set, using in-memory semantic cache")
    return InMemoryKeyValueStore()


def build_vector_backend(settings: Settings) -> VectorBackend:
    if settings.supabase_enabled:
        from neuroflow.infrastructure.storage.supabase_vector import SupabaseVectorBackend
        return SupabaseVectorBackend(settings.supabase_url, settings.supabase_key, table=settings.memory_table)

    logger.info("Supabase not configured, using in-memory vector store")
    return InMemoryVectorBackend()


def build_core(
    settings: Optional[Settings] = None,
    chat_model: Optional[BaseChatModel] = None,
    embeddings: Optional[Embeddings] = None,
    kv_store: Optional[KeyValueStore] = None,
    vector_backend: Optional[VectorBackend] = None,
    dispatcher: Optional[IntentDispatcher] = None
) -> CognitiveCore:
    """Wire every component from settings; any collaborator can be injected instead"""

    settings = settings or get_settings()

    # Tracing must be configured before the generation client wraps its calls
    configure_tracing(settings.langfuse_public_key, settings.langfuse_secret_key, settings.langfuse_host)

    memory = VectorMemoryStore(
        embeddings=embeddings or build_embeddings(settings),
        backend=vector_backend or build_vector_backend(settings),
        dimension=settings.embedding_dimension,
        embedding_timeout=settings.embedding_timeout_seconds,
        store_timeout=settings.vector_store_timeout_seconds
    )
    cache = SemanticCache(
        store=kv_store or build_kv_store(settings),
        default_ttl=settings.cache_ttl_seconds,
        timeout=settings.cache_timeout_seconds
    )
    generation = GenerationClient(
        chat_model or build_chat_model(settings),
        timeout=settings.generation_timeout_seconds
    )
    sanitizer = ResponseSanitizer()

    config = settings.classifier
    store = CognitiveStateStore(
        stale_after_seconds=config.stale_after_seconds,
        evict_after_seconds=config.evict_after_seconds
    )
    classifier = TelemetryClassifier(config, store)

    router = ActionRouter(
        state_reader=store.get_state,
        buffer=CommunicationBuffer(),
        executors=[
            TaskExecutor(generation, cache, sanitizer),
            CommunicationExecutor(generation, cache, sanitizer, memory),
            MeetingExecutor(),
        ]
    )

    logger.info(
        "Cognitive core assembled",
        chat_model=settings.chat_model,
        embedding_dimension=settings.embedding_dimension,
        redis=bool(settings.redis_url),
        supabase=settings.supabase_enabled
    )

    return CognitiveCore(
        classifier=classifier,
        router=router,
        memory=memory,
        triggers=TriggerEvaluator(dnd_minutes=settings.dnd_minutes),
        dispatcher=dispatcher or IntentDispatcher(timeout=settings.actuator_timeout_seconds),
        sweep_interval=settings.sweep_interval_seconds
    )
