from typing import Any, AsyncIterator
import asyncio
import time

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
import structlog

from neuroflow.domain.errors import BackendUnavailable
from neuroflow.infrastructure.observability.langfuse_tracing import trace_generation
from neuroflow.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


def content_text(content: Any) -> str:
    """Flatten chat message content, which providers may return as a list of parts"""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return "" if content is None else str(content)


class GenerationClient:
    """Timeout-bounded access to the text generation backend"""

    def __init__(self, model: BaseChatModel, timeout: float = 20.0):
        self.model = model
        self.timeout = timeout
        self._invoke = trace_generation(self._invoke_model, name="chat_generation")

    async def _invoke_model(self, prompt: str) -> str:
        response = await self.model.ainvoke([HumanMessage(content=prompt)])
        return content_text(response.content)

    async def generate(self, prompt: str) -> str:
        """Return the raw completion text for a prompt"""

        started = time.perf_counter()
        try:
            text = await asyncio.wait_for(self._invoke(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Generation timed out", timeout=self.timeout)
            metrics.increment_counter("generation.timeout")
            raise BackendUnavailable("Generation timed out", {"timeout": self.timeout}) from e
        except Exception as e:
            logger.error("Generation failed", error=repr(e))
            metrics.increment_counter("generation.error")
            raise BackendUnavailable(f"Generation failed: {e!r}") from e

        metrics.record_latency("generation", (time.perf_counter() - started) * 1000)
        return text

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield completion text as it arrives; each chunk is bounded by the timeout"""

        chunks = self.model.astream([HumanMessage(content=prompt)]).__aiter__()
        while True:
            try:
                chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.timeout)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError as e:
                logger.warning("Generation stream stalled", timeout=self.timeout)
                raise BackendUnavailable("Generation stream timed out", {"timeout": self.timeout}) from e
            except Exception as e:
                logger.error("Generation stream failed", error=repr(e))
                raise BackendUnavailable(f"Generation stream failed: {e!r}") from e

            text = content_text(chunk.content)
            if text:
                yield text
