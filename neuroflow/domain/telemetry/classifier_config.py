from typing import Dict
from pydantic import BaseModel, Field, model_validator

from neuroflow.domain.models.cognitive_state import SignalName


class SignalChannel(BaseModel):
    """Expected domain and weight of one telemetry channel"""
    low: float = 0.0
    high: float
    weight: float = Field(ge=0.0)

    @model_validator(mode="after")
    def check_domain(self) -> "SignalChannel":
        if self.high <= self.low:
            raise ValueError("Signal channel upper bound must exceed lower bound")
        return self

    def normalize(self, value: float) -> float:
        """Clip to the domain then scale to [0, 1]"""
        clipped = min(max(value, self.low), self.high)
        return (clipped - self.low) / (self.high - self.low)


def default_channels() -> Dict[str, SignalChannel]:
    return {
        SignalName.KEYSTROKE_RATE.value: SignalChannel(high=150.0, weight=0.10),
        SignalName.ERROR_RATE.value: SignalChannel(high=1.0, weight=0.25),
        SignalName.PAUSE_FREQUENCY.value: SignalChannel(high=10.0, weight=0.10),
        SignalName.CONTEXT_SWITCHES.value: SignalChannel(high=5.0, weight=0.20),
        SignalName.FACIAL_TENSION.value: SignalChannel(high=100.0, weight=0.20),
        SignalName.GAZE_WANDER.value: SignalChannel(high=100.0, weight=0.10),
        SignalName.VOCAL_ENERGY.value: SignalChannel(high=100.0, weight=0.05),
    }


class ClassifierConfig(BaseModel):
    """Fixed classification weights and thresholds"""
    channels: Dict[str, SignalChannel] = Field(default_factory=default_channels)
    approaching_threshold: float = Field(default=40.0, description="Scores at or above are approaching overload")
    overload_threshold: float = Field(default=65.0, description="Scores strictly above are overload")
    absorption_threshold: float = Field(default=75.0, description="Absorption at or above flags hyperfocus")
    hysteresis_samples: int = Field(default=3, ge=1, description="Consecutive samples before a candidate commits")
    stale_after_seconds: float = Field(default=30.0, gt=0)
    evict_after_seconds: float = Field(default=3600.0, gt=0)

    @model_validator(mode="after")
    def check_thresholds(self) -> "ClassifierConfig":
        if not 0.0 <= self.approaching_threshold <= self.overload_threshold <= 100.0:
            raise ValueError("Thresholds must satisfy 0 <= approaching <= overload <= 100")
        if self.evict_after_seconds < self.stale_after_seconds:
            raise ValueError("Eviction must not happen before a user goes stale")
        return self
