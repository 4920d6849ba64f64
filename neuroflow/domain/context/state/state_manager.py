from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional
import asyncio
import time
import uuid

import structlog

from neuroflow.domain.models.cognitive_state import (
    CognitiveState,
    StateTransition,
    UserStateSnapshot,
    utcnow,
)

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class UserCognitiveRecord:
    """Mutable classification state of one user; only touch it while holding `lock`"""

    user_id: str
    state: CognitiveState = CognitiveState.NORMAL
    score: float = 0.0
    candidate: Optional[CognitiveState] = None
    candidate_streak: int = 0
    sequence: int = 0
    last_seen: Optional[float] = None
    last_sample_at: Optional[datetime] = None
    # New for every recreated record; sequences restart within it
    epoch: str = field(default_factory=lambda: uuid.uuid4().hex)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def propose(self, candidate: CognitiveState) -> int:
        """Count consecutive samples proposing the same candidate"""

        if candidate == self.state:
            self.candidate = None
            self.candidate_streak = 0
        elif candidate == self.candidate:
            self.candidate_streak += 1
        else:
            self.candidate = candidate
            self.candidate_streak = 1
        return self.candidate_streak

    def commit(self, to_state: CognitiveState) -> StateTransition:
        self.sequence += 1
        transition = StateTransition(
            user_id=self.user_id,
            from_state=self.state,
            to_state=to_state,
            sequence=self.sequence,
            epoch=self.epoch,
            committed_at=utcnow()
        )
        self.state = to_state
        self.candidate = None
        self.candidate_streak = 0
        return transition


class CognitiveStateStore:
    """Per-user cognitive state, sharded by user id with one lock per user.

    The dict itself is guarded by a store-wide lock that is only held for
    lookups, so users never block each other while being classified.
    """

    def __init__(
        self,
        stale_after_seconds: float = 30.0,
        evict_after_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.records: Dict[str, UserCognitiveRecord] = {}
        self.stale_after_seconds = stale_after_seconds
        self.evict_after_seconds = evict_after_seconds
        self.clock = clock
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def locked(self, user_id: str, create: bool = True) -> AsyncIterator[Optional[UserCognitiveRecord]]:
        """Hold the user's lock; yields None when the user is unknown and create is False"""

        while True:
            async with self._lock:
                record = self.records.get(user_id)
                if record is None:
                    if not create:
                        break
                    record = UserCognitiveRecord(user_id=user_id)
                    self.records[user_id] = record

            async with record.lock:
                # Evicted while we waited: start over with a fresh record
                if self.records.get(user_id) is record:
                    yield record
                    return

        yield None

    def is_stale(self, record: UserCognitiveRecord, now: Optional[float] = None) -> bool:
        if record.last_seen is None:
            return False
        now = self.clock() if now is None else now
        return now - record.last_seen >= self.stale_after_seconds

    def is_idle(self, record: UserCognitiveRecord, now: Optional[float] = None) -> bool:
        if record.last_seen is None:
            return False
        now = self.clock() if now is None else now
        return now - record.last_seen >= self.evict_after_seconds

    def get_state(self, user_id: str) -> CognitiveState:
        """Current state, reporting stale lazily; unknown users are normal"""

        record = self.records.get(user_id)
        if record is None:
            return CognitiveState.NORMAL
        if self.is_stale(record):
            return CognitiveState.STALE
        return record.state

    def snapshot(self, user_id: str) -> Optional[UserStateSnapshot]:
        record = self.records.get(user_id)
        if record is None:
            return None

        return UserStateSnapshot(
            user_id=record.user_id,
            state=CognitiveState.STALE if self.is_stale(record) else record.state,
            score=record.score,
            candidate=record.candidate,
            candidate_streak=record.candidate_streak,
            sequence=record.sequence,
            last_sample_at=record.last_sample_at
        )

    async def user_ids(self) -> List[str]:
        async with self._lock:
            return list(self.records.keys())

    async def remove(self, user_id: str) -> bool:
        """Drop a user's state; callers already holding the user's lock may call this"""

        async with self._lock:
            removed = self.records.pop(user_id, None) is not None

        if removed:
            logger.info("User state removed", user_id=user_id)
        return removed

    def active_count(self) -> int:
        return len(self.records)
