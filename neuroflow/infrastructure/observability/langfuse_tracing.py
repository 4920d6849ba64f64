# Langfuse integration
from typing import Any, Awaitable, Callable, Optional, TypeVar
from langfuse import Langfuse, observe
import structlog

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

_langfuse: Optional[Langfuse] = None


def configure_tracing(
    public_key: Optional[str],
    secret_key: Optional[str],
    host: Optional[str] = None
) -> bool:
    """Register the Langfuse client; tracing stays off without credentials"""
    global _langfuse

    if not (public_key and secret_key):
        logger.info("Langfuse tracing disabled")
        return False

    _langfuse = Langfuse(public_key=public_key, secret_key=secret_key, host=host)
    logger.info("Langfuse tracing enabled", host=host)
    return True


def tracing_enabled() -> bool:
    return _langfuse is not None


def trace_generation(fn: F, name: str = "generation") -> F:
    """Wrap a generation coroutine in a Langfuse generation observation when tracing is on"""

    if not tracing_enabled():
        return fn
    return observe(name=name, as_type="generation")(fn)


def flush_tracing() -> None:
    if _langfuse is not None:
        _langfuse.flush()
