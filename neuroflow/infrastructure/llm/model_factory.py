from langchain.chat_models import init_chat_model
from langchain.embeddings import init_embeddings
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
import structlog

from neuroflow.infrastructure.config.settings import Settings

logger = structlog.get_logger(__name__)


def build_chat_model(settings: Settings) -> BaseChatModel:
    """Chat model for task decomposition and communication translation"""

    logger.info("Initializing chat model", model=settings.chat_model, provider=settings.model_provider)
    return init_chat_model(
        settings.chat_model,
        model_provider=settings.model_provider,
        temperature=settings.generation_temperature
    )


def build_embeddings(settings: Settings) -> Embeddings:
    """Embedding model; "provider:model" strings select the provider"""

    logger.info("Initializing embeddings", model=settings.embedding_model)
    return init_embeddings(settings.embedding_model)
