from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
import math


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CognitiveState(str, Enum):
    """Discrete attentional capacity label"""
    NORMAL = "normal"
    HYPERFOCUS = "hyperfocus"
    APPROACHING_OVERLOAD = "approaching_overload"
    OVERLOAD = "overload"
    STALE = "stale"

    @property
    def effective(self) -> "CognitiveState":
        """State used for policy decisions; stale users are treated as normal"""
        return CognitiveState.NORMAL if self is CognitiveState.STALE else self


class SignalName(str, Enum):
    """Telemetry channels produced by the browser monitor"""
    KEYSTROKE_RATE = "keystroke_rate"
    PAUSE_FREQUENCY = "pause_frequency"
    CONTEXT_SWITCHES = "context_switches"
    ERROR_RATE = "error_rate"
    FACIAL_TENSION = "facial_tension"
    GAZE_WANDER = "gaze_wander"
    VOCAL_ENERGY = "vocal_energy"


class TelemetrySample(BaseModel):
    """One snapshot of behavioral signals for a user"""
    user_id: str = Field(min_length=1, description="User the sample belongs to")
    captured_at: datetime = Field(default_factory=utcnow)
    signals: Dict[str, float] = Field(default_factory=dict)

    @field_validator("signals", mode="before")
    @classmethod
    def coerce_signals(cls, value: Any) -> Dict[str, float]:
        # Unparseable readings become NaN so the classifier can skip them
        if not isinstance(value, dict):
            return {}

        coerced = {}
        for name, reading in value.items():
            try:
                coerced[str(name)] = float(reading)
            except OverflowError:
                # Integers too large for a float clamp like infinities
                coerced[str(name)] = math.inf if reading > 0 else -math.inf
            except (TypeError, ValueError):
                coerced[str(name)] = math.nan
        return coerced


class StateTransition(BaseModel):
    """A committed change of cognitive state"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    from_state: CognitiveState
    to_state: CognitiveState
    sequence: int = Field(description="Per-user commit counter")
    epoch: str = Field(default="", description="Lifetime of the user record the sequence counts within")
    committed_at: datetime = Field(default_factory=utcnow)


class ClassificationResult(BaseModel):
    """Outcome of ingesting one telemetry sample"""
    user_id: str
    score: float = Field(ge=0.0, le=100.0)
    state: CognitiveState
    candidate: CognitiveState
    transitions: List[StateTransition] = Field(default_factory=list)

    @property
    def transitioned(self) -> bool:
        return len(self.transitions) > 0

    def get_summary(self) -> Dict[str, Any]:
        """Summary safe to broadcast to anonymized dashboards"""
        return {
            "score": round(self.score, 2),
            "classification": self.state.value,
            "transitioned": self.transitioned
        }


class IntentType(str, Enum):
    """Side effects the actuator layer knows how to perform"""
    ACTIVATE_SENSORY_BUFFER = "activate_sensory_buffer"
    MUTE_COMMUNICATIONS = "mute_communications"
    BATCH_NOTIFICATIONS = "batch_notifications"
    RESTORE_DEFAULTS = "restore_defaults"
    START_RECOVERY_PROTOCOL = "start_recovery_protocol"
    INSERT_CALENDAR_BLOCK = "insert_calendar_block"


class SideEffectIntent(BaseModel):
    """An actuator call requested by the core, never performed by it"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    intent: IntentType
    actuator: str = Field(description="Actuator family, e.g. slack, calendar, ui")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    dedupe_key: str = Field(description="Stable key the actuator layer de-duplicates on")


class UserStateSnapshot(BaseModel):
    """Read-only view of a user's current classification"""
    user_id: str
    state: CognitiveState
    score: float
    candidate: Optional[CognitiveState] = None
    candidate_streak: int = 0
    sequence: int = 0
    last_sample_at: Optional[datetime] = None
