from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import os
import sys

import structlog

# Bound by the API layer per request or socket
CONTEXT_KEYS = ("request_id", "user_id")

RENDERERS = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}


def add_request_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Copy request-scoped identifiers onto events logged outside the binding call stack"""

    bound = structlog.contextvars.get_contextvars()
    for key in CONTEXT_KEYS:
        if bound.get(key):
            event_dict.setdefault(key, bound[key])
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "neuroflow-core"
) -> None:
    """Route structlog through stdlib logging with JSON or console output"""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_request_context,
        structlog.processors.format_exc_info,
        RENDERERS.get(log_format, structlog.processors.JSONRenderer)(),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("NEUROFLOW_ENVIRONMENT", "development")
    )


class CognitiveLogger:
    """Specialized logger for core cognitive events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_state_transition(
        self,
        user_id: str,
        from_state: str,
        to_state: str,
        score: Optional[float] = None,
        sequence: Optional[int] = None
    ):
        """Log a committed cognitive state transition"""

        self.logger.info(
            "state_transition",
            user_id=user_id,
            from_state=from_state,
            to_state=to_state,
            score=score,
            sequence=sequence
        )

    def log_action_routed(
        self,
        user_id: str,
        action_type: str,
        status: str,
        policy: Optional[str] = None,
        duration_ms: Optional[float] = None,
        fallback: bool = False,
        error_kind: Optional[str] = None
    ):
        """Log the outcome of routing an action request"""

        self.logger.info(
            "action_routed",
            user_id=user_id,
            action_type=action_type,
            status=status,
            policy=policy,
            duration_ms=duration_ms,
            fallback=fallback,
            error_kind=error_kind
        )

    def log_cache_event(
        self,
        context_tag: str,
        outcome: str,
        key_prefix: Optional[str] = None,
        error: Optional[str] = None
    ):
        """Log semantic cache hits, misses and degradations"""

        self.logger.debug(
            "cache_event",
            context_tag=context_tag,
            outcome=outcome,
            key_prefix=key_prefix,
            error=error
        )

    def log_memory_operation(
        self,
        operation: str,
        user_id: Optional[str] = None,
        count: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log vector memory writes, searches and deletions"""

        self.logger.info(
            "memory_operation",
            operation=operation,
            user_id=user_id,
            count=count,
            details=details or {}
        )


# Global logger instance
cognitive_logger = CognitiveLogger("neuroflow")


@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def observe(self, duration_ms: float):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": round(self.total_ms / self.count, 3) if self.count else 0.0,
            "min": round(self.min_ms or 0.0, 3),
            "max": round(self.max_ms, 3)
        }


class MetricsCollector:
    """In-process latencies, counters and gauges, each also emitted as a debug log event"""

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = defaultdict(LatencyStats)
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, float] = {}

    def _emit(self, metric_type: str, name: str, value: float, tags: Optional[Dict[str, str]]):
        cognitive_logger.logger.debug("metric", metric_type=metric_type, name=name, value=value, tags=tags or {})

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self.latencies[operation].observe(duration_ms)
        self._emit("latency", operation, duration_ms, tags)

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] += value
        self._emit("counter", name, value, tags)

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self.gauges[name] = value
        self._emit("gauge", name, value, tags)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Snapshot served by the health endpoint"""
        return {
            "latency": {operation: stats.summary() for operation, stats in self.latencies.items()},
            "counters": dict(self.counters),
            "gauges": dict(self.gauges)
        }


metrics = MetricsCollector()
