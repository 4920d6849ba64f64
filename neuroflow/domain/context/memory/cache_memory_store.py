from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
import asyncio
import hashlib
import json
import math
import time

import structlog

from neuroflow.infrastructure.observability.logging import cognitive_logger, metrics

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 3600
KEY_PREFIX = "semantic_cache"


class KeyValueStore(ABC):
    """Shared key-value store with per-key expiry"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored string or None"""
        pass

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a string that expires after ttl_seconds"""
        pass


class SemanticCache:
    """Content-addressed cache for generated results.

    Keys are a SHA-256 digest of the context tag and the exact prompt bytes, so
    any difference (whitespace included) is a miss. Entries carry their own
    expiry, which is checked on read regardless of how lazily the backing store
    expires keys. Caching is an optimization: backend failures and timeouts
    degrade to a miss and are never raised to the caller.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        timeout: float = 0.5,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.default_ttl = default_ttl
        self.timeout = timeout
        self.clock = clock

    @staticmethod
    def derive_key(prompt: str, context_tag: str) -> str:
        digest = hashlib.sha256(f"{context_tag}\x00{prompt}".encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}:{digest}"

    async def get(self, prompt: str, context_tag: str) -> Optional[Any]:
        """Return the cached value, or None on miss"""

        key = self.derive_key(prompt, context_tag)

        try:
            raw = await asyncio.wait_for(self.store.get(key), timeout=self.timeout)
        except Exception as e:
            self._record(context_tag, "degraded", key, error=repr(e))
            return None

        if raw is None:
            self._record(context_tag, "miss", key)
            return None

        try:
            envelope = json.loads(raw)
            expires_at = float(envelope["expires_at"])
            value = envelope["value"]
        except (ValueError, KeyError, TypeError) as e:
            self._record(context_tag, "corrupt", key, error=repr(e))
            return None

        if self.clock() >= expires_at:
            self._record(context_tag, "expired", key)
            return None

        self._record(context_tag, "hit", key)
        return value

    async def put(
        self,
        prompt: str,
        context_tag: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> bool:
        """Store a value; returns False when nothing was written"""

        if value is None:
            return False

        ttl_seconds = self.default_ttl if ttl is None else ttl
        if ttl_seconds <= 0:
            return False

        key = self.derive_key(prompt, context_tag)

        try:
            payload = json.dumps({
                "value": value,
                "context_tag": context_tag,
                "expires_at": self.clock() + ttl_seconds
            })
        except (TypeError, ValueError) as e:
            self._record(context_tag, "unserializable", key, error=repr(e))
            return False

        try:
            await asyncio.wait_for(
                self.store.set_with_ttl(key, payload, int(math.ceil(ttl_seconds))),
                timeout=self.timeout
            )
        except Exception as e:
            self._record(context_tag, "degraded", key, error=repr(e))
            return False

        self._record(context_tag, "stored", key)
        return True

    def _record(self, context_tag: str, outcome: str, key: str, error: Optional[str] = None):
        metrics.increment_counter(f"cache.{outcome}", tags={"context_tag": context_tag})
        cognitive_logger.log_cache_event(
            context_tag=context_tag,
            outcome=outcome,
            key_prefix=key[len(KEY_PREFIX) + 1:][:12],
            error=error
        )
        if outcome == "degraded":
            logger.warning("Semantic cache unavailable, treating as miss", context_tag=context_tag, error=error)
