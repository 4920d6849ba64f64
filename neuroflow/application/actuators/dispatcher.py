from collections import OrderedDict
from functools import partial
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set
import asyncio

import structlog

from neuroflow.domain.models.cognitive_state import SideEffectIntent
from neuroflow.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

Actuator = Callable[[SideEffectIntent], Awaitable[None]]

MAX_REMEMBERED_KEYS = 10_000
DEFAULT_ACTUATOR_TIMEOUT = 5.0


class IntentDispatcher:
    """
    Boundary between the core and third-party actuators (Slack, Calendar, UI...).

    Intents are de-duplicated by their dedupe key so re-delivered transitions
    never fire an actuator twice. `submit` hands intents to a per-user outbox
    that runs in the background: a user's intents are performed in submission
    order, and users never wait on each other. Every actuator call is bounded
    by `timeout`; failures and timeouts are logged here and never propagate.
    """

    def __init__(self, max_remembered_keys: int = MAX_REMEMBERED_KEYS, timeout: float = DEFAULT_ACTUATOR_TIMEOUT):
        self.actuators: Dict[str, Actuator] = {}
        self.max_remembered_keys = max_remembered_keys
        self.timeout = timeout
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._outbox: Dict[str, asyncio.Task] = {}
        self._pending: Set[asyncio.Task] = set()

    def register(self, actuator: str, handler: Actuator):
        self.actuators[actuator] = handler
        logger.info("Registered actuator", actuator=actuator)

    def registered(self) -> List[str]:
        return list(self.actuators.keys())

    def _claim(self, dedupe_key: str) -> bool:
        if dedupe_key in self._seen:
            metrics.increment_counter("intents.duplicate")
            return False
        self._seen[dedupe_key] = None
        if len(self._seen) > self.max_remembered_keys:
            self._seen.popitem(last=False)
        return True

    async def _perform(self, intent: SideEffectIntent) -> bool:
        handler = self.actuators.get(intent.actuator)
        if handler is None:
            logger.info(
                "No actuator registered for intent",
                actuator=intent.actuator,
                intent=intent.intent.value,
                user_id=intent.user_id
            )
            metrics.increment_counter("intents.unhandled", tags={"actuator": intent.actuator})
            return False

        try:
            await asyncio.wait_for(handler(intent), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Actuator timed out",
                actuator=intent.actuator,
                intent=intent.intent.value,
                user_id=intent.user_id,
                timeout=self.timeout
            )
            metrics.increment_counter("intents.timeout", tags={"actuator": intent.actuator})
            return False
        except Exception as e:
            logger.error(
                "Actuator failed",
                actuator=intent.actuator,
                intent=intent.intent.value,
                user_id=intent.user_id,
                error=repr(e)
            )
            metrics.increment_counter("intents.failed", tags={"actuator": intent.actuator})
            return False

        metrics.increment_counter("intents.performed", tags={"actuator": intent.actuator})
        return True

    async def dispatch(self, intents: Iterable[SideEffectIntent]) -> int:
        """Perform intents inline; returns how many actuators succeeded"""

        performed = 0
        for intent in intents:
            if self._claim(intent.dedupe_key) and await self._perform(intent):
                performed += 1
        return performed

    def submit(self, intents: Iterable[SideEffectIntent]) -> int:
        """Queue intents behind earlier ones for the same user; returns how many were queued"""

        batches: Dict[str, List[SideEffectIntent]] = {}
        for intent in intents:
            if self._claim(intent.dedupe_key):
                batches.setdefault(intent.user_id, []).append(intent)

        for user_id, batch in batches.items():
            task = asyncio.create_task(self._drain_outbox(self._outbox.get(user_id), batch))
            self._outbox[user_id] = task
            self._pending.add(task)
            task.add_done_callback(partial(self._forget, user_id))

        return sum(len(batch) for batch in batches.values())

    async def _drain_outbox(self, previous: Optional[asyncio.Task], batch: List[SideEffectIntent]):
        if previous is not None:
            await asyncio.wait([previous])
        for intent in batch:
            await self._perform(intent)

    def _forget(self, user_id: str, task: asyncio.Task):
        self._pending.discard(task)
        if self._outbox.get(user_id) is task:
            del self._outbox[user_id]

    async def flush(self):
        """Wait for every queued intent to be performed"""

        while self._pending:
            await asyncio.wait(list(self._pending))
