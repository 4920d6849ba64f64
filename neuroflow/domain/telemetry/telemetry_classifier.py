from typing import Awaitable, Callable, Dict, List, Optional
import math

import structlog

from neuroflow.domain.context.state.state_manager import CognitiveStateStore, UserCognitiveRecord
from neuroflow.domain.models.cognitive_state import (
    ClassificationResult,
    CognitiveState,
    SignalName,
    StateTransition,
    TelemetrySample,
)
from neuroflow.domain.telemetry.classifier_config import ClassifierConfig
from neuroflow.infrastructure.observability.logging import cognitive_logger, metrics

logger = structlog.get_logger(__name__)

TransitionHandler = Callable[[StateTransition], Awaitable[None]]

# Channels whose low values indicate absorption, and whether they are inverted
ABSORPTION_CHANNELS = [
    (SignalName.KEYSTROKE_RATE.value, False),
    (SignalName.CONTEXT_SWITCHES.value, True),
    (SignalName.PAUSE_FREQUENCY.value, True),
    (SignalName.GAZE_WANDER.value, True),
]
ABSORPTION_REQUIRED = {SignalName.KEYSTROKE_RATE.value, SignalName.CONTEXT_SWITCHES.value}


class TelemetryClassifier:
    """
    Turns telemetry samples into a committed cognitive state per user.

    Scores are recomputed on every sample; the committed state only changes
    after the same candidate has been proposed for `hysteresis_samples`
    consecutive samples. Malformed readings are skipped or clamped, never
    raised, and actuators are never called from here: committed transitions
    are handed to registered handlers instead.
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        store: Optional[CognitiveStateStore] = None
    ):
        self.config = config or ClassifierConfig()
        self.store = store or CognitiveStateStore(
            stale_after_seconds=self.config.stale_after_seconds,
            evict_after_seconds=self.config.evict_after_seconds
        )
        self.handlers: List[TransitionHandler] = []

    def register_transition_handler(self, handler: TransitionHandler):
        self.handlers.append(handler)

    def _usable_readings(self, signals: Dict[str, float]) -> Dict[str, float]:
        readings = {}
        for name, value in signals.items():
            if name not in self.config.channels or math.isnan(value):
                continue
            readings[name] = self.config.channels[name].normalize(value)
        return readings

    def compute_score(self, signals: Dict[str, float]) -> Optional[float]:
        """Weighted load score in [0, 100], or None when no channel is usable"""

        readings = self._usable_readings(signals)
        total_weight = sum(self.config.channels[name].weight for name in readings)
        if total_weight <= 0:
            return None

        weighted = sum(self.config.channels[name].weight * value for name, value in readings.items())
        return min(max(weighted / total_weight * 100.0, 0.0), 100.0)

    def compute_absorption(self, signals: Dict[str, float]) -> Optional[float]:
        """High typing with little switching, pausing or wandering; None without the required channels"""

        readings = self._usable_readings(signals)
        if not ABSORPTION_REQUIRED.issubset(readings):
            return None

        parts = [
            1.0 - readings[name] if inverted else readings[name]
            for name, inverted in ABSORPTION_CHANNELS
            if name in readings
        ]
        return sum(parts) / len(parts) * 100.0

    def candidate_for(self, score: float, absorption: Optional[float] = None) -> CognitiveState:
        if absorption is not None and absorption >= self.config.absorption_threshold:
            return CognitiveState.HYPERFOCUS
        if score > self.config.overload_threshold:
            return CognitiveState.OVERLOAD
        if score >= self.config.approaching_threshold:
            return CognitiveState.APPROACHING_OVERLOAD
        return CognitiveState.NORMAL

    async def ingest(self, sample: TelemetrySample) -> ClassificationResult:
        """Classify one sample and commit a new state once hysteresis is satisfied"""

        async with self.store.locked(sample.user_id) as record:
            transitions: List[StateTransition] = []
            now = self.store.clock()

            if record.state == CognitiveState.STALE or self.store.is_stale(record, now):
                # Returning users restart from the baseline
                record.score = 0.0
                record.candidate = None
                record.candidate_streak = 0
                if record.state != CognitiveState.NORMAL:
                    transitions.append(record.commit(CognitiveState.NORMAL))

            record.last_seen = now
            record.last_sample_at = sample.captured_at

            score = self.compute_score(sample.signals)
            if score is None:
                logger.debug("Sample has no usable signals", user_id=sample.user_id)
                score = record.score
            record.score = score

            candidate = self.candidate_for(score, self.compute_absorption(sample.signals))
            if record.propose(candidate) >= self.config.hysteresis_samples:
                transitions.append(record.commit(candidate))

            await self._deliver(record, transitions)

            metrics.increment_counter("telemetry.samples")
            return ClassificationResult(
                user_id=record.user_id,
                score=record.score,
                state=record.state,
                candidate=candidate,
                transitions=transitions
            )

    async def sweep(self) -> Dict[str, int]:
        """Commit stale transitions for silent users and evict idle ones"""

        staled = 0
        evicted = 0

        for user_id in await self.store.user_ids():
            async with self.store.locked(user_id, create=False) as record:
                if record is None:
                    continue

                now = self.store.clock()
                if self.store.is_idle(record, now):
                    await self.store.remove(user_id)
                    evicted += 1
                    continue

                if self.store.is_stale(record, now) and record.state != CognitiveState.STALE:
                    await self._deliver(record, [record.commit(CognitiveState.STALE)])
                    staled += 1

        metrics.set_gauge("telemetry.active_users", self.store.active_count())
        if staled or evicted:
            logger.info("State sweep finished", staled=staled, evicted=evicted)
        return {"staled": staled, "evicted": evicted}

    async def _deliver(self, record: UserCognitiveRecord, transitions: List[StateTransition]):
        for transition in transitions:
            cognitive_logger.log_state_transition(
                user_id=transition.user_id,
                from_state=transition.from_state.value,
                to_state=transition.to_state.value,
                score=record.score,
                sequence=transition.sequence
            )
            metrics.increment_counter("telemetry.transitions", tags={"to_state": transition.to_state.value})

            for handler in self.handlers:
                try:
                    await handler(transition)
                except Exception as e:
                    logger.error(
                        "Transition handler failed",
                        user_id=transition.user_id,
                        sequence=transition.sequence,
                        error=repr(e)
                    )
