from typing import Dict, List, Optional
from unittest.mock import AsyncMock

from langchain_core.embeddings import Embeddings
import pytest

from neuroflow.domain.context.memory.cache_memory_store import SemanticCache
from neuroflow.domain.context.memory.vector_memory_store import VectorMemoryStore
from neuroflow.domain.context.state.state_manager import CognitiveStateStore
from neuroflow.domain.generation.generation_client import GenerationClient
from neuroflow.domain.generation.response_sanitizer import ResponseSanitizer
from neuroflow.domain.telemetry.classifier_config import ClassifierConfig
from neuroflow.domain.telemetry.telemetry_classifier import TelemetryClassifier
from neuroflow.infrastructure.storage.in_memory import InMemoryKeyValueStore, InMemoryVectorBackend

TEST_DIMENSION = 4

REPORT_FRIDAY = "standup promise: ship the report on friday"
REPORT_MONDAY = "standup promise: review the report on monday"
GROCERIES = "grocery list: oat milk and rice"
REPORT_QUERY = "what did I promise about the report?"

TEST_VECTORS: Dict[str, List[float]] = {
    REPORT_FRIDAY: [1.0, 0.2, 0.0, 0.0],
    REPORT_MONDAY: [0.9, 0.45, 0.0, 0.0],
    GROCERIES: [0.0, 0.0, 1.0, 0.0],
    REPORT_QUERY: [1.0, 0.1, 0.0, 0.0],
}


class MappedEmbeddings(Embeddings):
    """Deterministic embeddings looked up from a fixed table"""

    def __init__(self, vectors: Dict[str, List[float]], default: Optional[List[float]] = None):
        self.vectors = vectors
        self.default = default or [0.0, 0.0, 0.0, 1.0]

    def embed_query(self, text: str) -> List[float]:
        return list(self.vectors.get(text, self.default))

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_query(text) for text in texts]


class FakeClock:
    """Manually advanced clock for TTL and staleness tests"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def cache(kv_store, clock):
    return SemanticCache(kv_store, default_ttl=3600, clock=clock)


@pytest.fixture
def embeddings():
    return MappedEmbeddings(TEST_VECTORS)


@pytest.fixture
def vector_backend():
    return InMemoryVectorBackend()


@pytest.fixture
def memory_store(embeddings, vector_backend):
    return VectorMemoryStore(embeddings, vector_backend, dimension=TEST_DIMENSION)


@pytest.fixture
def sanitizer():
    return ResponseSanitizer()


@pytest.fixture
def generation():
    """Generation client whose generate() is an AsyncMock"""
    return AsyncMock(spec=GenerationClient)


@pytest.fixture
def classifier_config():
    return ClassifierConfig()


@pytest.fixture
def state_store(classifier_config, clock):
    return CognitiveStateStore(
        stale_after_seconds=classifier_config.stale_after_seconds,
        evict_after_seconds=classifier_config.evict_after_seconds,
        clock=clock
    )


@pytest.fixture
def classifier(classifier_config, state_store):
    return TelemetryClassifier(classifier_config, state_store)
