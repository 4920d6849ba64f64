from dataclasses import dataclass
from typing import Any, Callable, Dict, List
import hashlib

import structlog

from neuroflow.domain.models.cognitive_state import (
    CognitiveState,
    IntentType,
    SideEffectIntent,
    StateTransition,
)

logger = structlog.get_logger(__name__)

DEFAULT_DND_MINUTES = 90

ENGAGED_STATES = {CognitiveState.OVERLOAD, CognitiveState.HYPERFOCUS}


@dataclass(slots=True, frozen=True)
class TriggerRule:
    """One row of the transition rules table"""

    name: str
    matches: Callable[[CognitiveState, CognitiveState], bool]
    intent: IntentType
    actuator: str
    parameters: Callable[[CognitiveState, CognitiveState], Dict[str, Any]]


def _leaving_engaged(from_state: CognitiveState, to_state: CognitiveState) -> bool:
    return from_state in ENGAGED_STATES and to_state not in ENGAGED_STATES


def _entering(state: CognitiveState) -> Callable[[CognitiveState, CognitiveState], bool]:
    return lambda from_state, to_state: to_state == state


def derive_dedupe_key(
    user_id: str,
    sequence: int,
    from_state: CognitiveState,
    to_state: CognitiveState,
    intent: IntentType,
    epoch: str = ""
) -> str:
    raw = f"{user_id}\x00{epoch}\x00{sequence}\x00{from_state.value}\x00{to_state.value}\x00{intent.value}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def build_rules(dnd_minutes: int = DEFAULT_DND_MINUTES) -> List[TriggerRule]:
    """Rules evaluated top to bottom; every matching rule contributes an intent"""

    return [
        TriggerRule(
            name="leave_engaged_state",
            matches=_leaving_engaged,
            intent=IntentType.RESTORE_DEFAULTS,
            actuator="environment",
            parameters=lambda from_state, to_state: {"restored_from": from_state.value}
        ),
        TriggerRule(
            name="enter_overload",
            matches=_entering(CognitiveState.OVERLOAD),
            intent=IntentType.ACTIVATE_SENSORY_BUFFER,
            actuator="ui",
            parameters=lambda from_state, to_state: {"reduce_motion": True, "mute_audio": True}
        ),
        TriggerRule(
            name="enter_hyperfocus",
            matches=_entering(CognitiveState.HYPERFOCUS),
            intent=IntentType.MUTE_COMMUNICATIONS,
            actuator="slack",
            parameters=lambda from_state, to_state: {"dnd_minutes": dnd_minutes}
        ),
        TriggerRule(
            name="enter_approaching_overload",
            matches=_entering(CognitiveState.APPROACHING_OVERLOAD),
            intent=IntentType.BATCH_NOTIFICATIONS,
            actuator="notifications",
            parameters=lambda from_state, to_state: {"mode": "digest"}
        ),
    ]


class TriggerEvaluator:
    """Maps committed state transitions to side-effect intents without doing any I/O"""

    def __init__(self, dnd_minutes: int = DEFAULT_DND_MINUTES):
        self.rules = build_rules(dnd_minutes)

    def on_transition(
        self,
        user_id: str,
        from_state: CognitiveState,
        to_state: CognitiveState,
        sequence: int = 0,
        epoch: str = ""
    ) -> List[SideEffectIntent]:
        if from_state == to_state:
            return []

        intents = []
        for rule in self.rules:
            if not rule.matches(from_state, to_state):
                continue
            intents.append(SideEffectIntent(
                user_id=user_id,
                intent=rule.intent,
                actuator=rule.actuator,
                parameters=rule.parameters(from_state, to_state),
                dedupe_key=derive_dedupe_key(user_id, sequence, from_state, to_state, rule.intent, epoch)
            ))

        if intents:
            logger.debug(
                "Transition produced intents",
                user_id=user_id,
                from_state=from_state.value,
                to_state=to_state.value,
                intents=[intent.intent.value for intent in intents]
            )
        return intents

    def evaluate(self, transition: StateTransition) -> List[SideEffectIntent]:
        return self.on_transition(
            transition.user_id,
            transition.from_state,
            transition.to_state,
            transition.sequence,
            transition.epoch
        )
