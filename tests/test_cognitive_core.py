from unittest.mock import AsyncMock
import asyncio

import pytest

from conftest import REPORT_FRIDAY, REPORT_QUERY
from neuroflow.application.actuators.dispatcher import IntentDispatcher
from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.domain.context.memory.runtime_memory import CommunicationBuffer
from neuroflow.domain.errors import InputInvalid
from neuroflow.domain.models.action import ActionStatus
from neuroflow.domain.models.cognitive_state import CognitiveState, IntentType, SideEffectIntent
from neuroflow.domain.models.memory import MemoryEntry
from neuroflow.domain.orchestration.core.action_router import ActionRouter
from neuroflow.domain.orchestration.executors.communication_executor import CommunicationExecutor
from neuroflow.domain.orchestration.executors.task_executor import TaskExecutor
from neuroflow.domain.triggers.trigger_evaluator import TriggerEvaluator


@pytest.fixture
def dispatcher():
    return IntentDispatcher()


@pytest.fixture
def core(classifier, memory_store, dispatcher, generation, cache, sanitizer):
    router = ActionRouter(
        state_reader=classifier.store.get_state,
        buffer=CommunicationBuffer(),
        executors=[
            TaskExecutor(generation, cache, sanitizer),
            CommunicationExecutor(generation, cache, sanitizer, memory_store),
        ]
    )
    return CognitiveCore(
        classifier=classifier,
        router=router,
        memory=memory_store,
        triggers=TriggerEvaluator(dnd_minutes=45),
        dispatcher=dispatcher
    )


async def push(core, user_id, tension, times=3):
    result = None
    for _ in range(times):
        result = await core.ingest_telemetry({"user_id": user_id, "signals": {"facial_tension": tension}})
    return result


@pytest.mark.asyncio
async def test_committed_transitions_reach_actuators(core, dispatcher):
    ui = AsyncMock()
    dispatcher.register("ui", ui)

    result = await push(core, "u1", 90)

    assert result.state == CognitiveState.OVERLOAD
    await dispatcher.flush()
    ui.assert_awaited_once()
    intent = ui.await_args.args[0]
    assert intent.intent == IntentType.ACTIVATE_SENSORY_BUFFER
    assert intent.user_id == "u1"


@pytest.mark.asyncio
async def test_hyperfocus_mutes_slack_for_configured_minutes(core, dispatcher):
    slack = AsyncMock()
    dispatcher.register("slack", slack)

    for _ in range(3):
        await core.ingest_telemetry({
            "user_id": "u1",
            "signals": {"keystroke_rate": 140, "context_switches": 0}
        })

    await dispatcher.flush()
    slack.assert_awaited_once()
    assert slack.await_args.args[0].parameters == {"dnd_minutes": 45}


@pytest.mark.asyncio
async def test_intervention_side_effects_are_dispatched(core, dispatcher, generation):
    ui = AsyncMock()
    dispatcher.register("ui", ui)
    await push(core, "u1", 95)
    await dispatcher.flush()
    ui.reset_mock()

    result = await core.route_action("u1", {
        "type": "initiate_task",
        "user_id": "u1",
        "payload": {"description": "File the expense report"}
    })

    await dispatcher.flush()
    assert result.status == ActionStatus.INTERVENTION
    assert [call.args[0].intent for call in ui.await_args_list] == [IntentType.START_RECOVERY_PROTOCOL]
    generation.generate.assert_not_called()


@pytest.mark.asyncio
async def test_missing_user_id_is_rejected(core):
    with pytest.raises(InputInvalid):
        await core.ingest_telemetry({"signals": {"facial_tension": 10}})


@pytest.mark.asyncio
async def test_hyperfocus_buffer_can_be_drained(core):
    for _ in range(3):
        await core.ingest_telemetry({"user_id": "u1", "signals": {"keystroke_rate": 150, "context_switches": 0}})

    result = await core.route_action("u1", {
        "type": "process_communication",
        "user_id": "u1",
        "payload": {"text": "Need the numbers now."}
    })

    assert result.status == ActionStatus.BUFFERED
    drained = await core.drain_buffered("u1")
    assert [message["text"] for message in drained] == ["Need the numbers now."]
    assert await core.drain_buffered("u1") == []


@pytest.mark.asyncio
async def test_memory_round_trip_through_core(core):
    memory_id = await core.remember_memory(MemoryEntry(user_id="u1", content=REPORT_FRIDAY))

    results = await core.recall_memory(REPORT_QUERY, user_id="u1")

    assert [result.id for result in results] == [memory_id]
    assert await core.forget_memory(memory_id) == 1
    assert await core.recall_memory(REPORT_QUERY, user_id="u1") == []


@pytest.mark.asyncio
async def test_forget_user_drops_everything(core):
    await core.remember_memories([
        MemoryEntry(user_id="u1", content=REPORT_FRIDAY),
        MemoryEntry(user_id="u1", content="another note"),
    ])
    await push(core, "u1", 50, times=1)
    await core.buffer.append("u1", {"text": "later"})

    summary = await core.forget_user("u1")

    assert summary == {"memories_deleted": 2, "state_removed": True, "buffered_dropped": 1}
    assert core.classifier.store.snapshot("u1") is None
    assert await core.forget_user("u1") == {"memories_deleted": 0, "state_removed": False, "buffered_dropped": 0}


@pytest.mark.asyncio
async def test_current_state_defaults_for_unknown_users(core):
    snapshot = core.current_state("ghost")

    assert snapshot.state == CognitiveState.NORMAL
    assert snapshot.score == 0.0
    assert snapshot.sequence == 0


@pytest.mark.asyncio
async def test_current_state_reports_candidate_progress(core):
    await push(core, "u1", 90, times=2)

    snapshot = core.current_state("u1")

    assert snapshot.state == CognitiveState.NORMAL
    assert snapshot.candidate == CognitiveState.OVERLOAD
    assert snapshot.candidate_streak == 2


@pytest.mark.asyncio
async def test_sweeper_starts_and_stops(core):
    core.start()
    assert core._sweeper is not None
    core.start()

    await core.stop()
    assert core._sweeper is None
    await core.stop()


@pytest.mark.asyncio
async def test_dispatcher_fires_each_dedupe_key_once():
    dispatcher = IntentDispatcher()
    calendar = AsyncMock()
    dispatcher.register("calendar", calendar)
    intent = SideEffectIntent(
        user_id="u1",
        intent=IntentType.INSERT_CALENDAR_BLOCK,
        actuator="calendar",
        dedupe_key="block-1"
    )

    assert await dispatcher.dispatch([intent]) == 1
    assert await dispatcher.dispatch([intent]) == 0
    calendar.assert_awaited_once_with(intent)


@pytest.mark.asyncio
async def test_dispatcher_survives_failing_and_missing_actuators():
    dispatcher = IntentDispatcher()
    dispatcher.register("slack", AsyncMock(side_effect=RuntimeError("slack down")))
    intents = [
        SideEffectIntent(user_id="u1", intent=IntentType.MUTE_COMMUNICATIONS, actuator="slack", dedupe_key="a"),
        SideEffectIntent(user_id="u1", intent=IntentType.RESTORE_DEFAULTS, actuator="environment", dedupe_key="b"),
    ]

    assert await dispatcher.dispatch(intents) == 0
    assert dispatcher.registered() == ["slack"]


@pytest.mark.asyncio
async def test_dispatcher_forgets_oldest_keys():
    dispatcher = IntentDispatcher(max_remembered_keys=2)
    ui = AsyncMock()
    dispatcher.register("ui", ui)

    def intent(key):
        return SideEffectIntent(user_id="u1", intent=IntentType.ACTIVATE_SENSORY_BUFFER, actuator="ui", dedupe_key=key)

    await dispatcher.dispatch([intent("a"), intent("b"), intent("c")])
    assert await dispatcher.dispatch([intent("a")]) == 1
    assert await dispatcher.dispatch([intent("c")]) == 0


@pytest.mark.asyncio
async def test_evicted_user_triggers_again_after_returning(core, dispatcher, clock):
    ui = AsyncMock()
    dispatcher.register("ui", ui)
    await push(core, "u1", 90)

    clock.advance(3601)
    assert (await core.sweep())["evicted"] == 1
    await push(core, "u1", 90)
    await dispatcher.flush()

    assert ui.await_count == 2
    first, second = [call.args[0] for call in ui.await_args_list]
    assert first.dedupe_key != second.dedupe_key


@pytest.mark.asyncio
async def test_forgotten_user_triggers_again(core, dispatcher):
    ui = AsyncMock()
    dispatcher.register("ui", ui)
    await push(core, "u1", 90)

    await core.forget_user("u1")
    await push(core, "u1", 90)
    await dispatcher.flush()

    assert ui.await_count == 2


@pytest.mark.asyncio
async def test_hung_actuator_does_not_hold_up_telemetry(core, dispatcher):
    release = asyncio.Event()

    async def ui(intent):
        await release.wait()

    dispatcher.register("ui", ui)

    result = await asyncio.wait_for(push(core, "u1", 90), 1.0)
    assert result.state == CognitiveState.OVERLOAD
    assert core.current_state("u1").state == CognitiveState.OVERLOAD

    release.set()
    await dispatcher.flush()


@pytest.mark.asyncio
async def test_route_action_returns_before_actuators_finish(core, dispatcher):
    release = asyncio.Event()
    delivered = []

    async def ui(intent):
        await release.wait()
        delivered.append(intent.intent)

    dispatcher.register("ui", ui)
    await push(core, "u1", 95)

    result = await asyncio.wait_for(core.route_action("u1", {
        "type": "initiate_task",
        "user_id": "u1",
        "payload": {"description": "File the expense report"}
    }), 1.0)

    assert result.status == ActionStatus.INTERVENTION
    assert delivered == []
    release.set()
    await dispatcher.flush()
    assert delivered == [IntentType.ACTIVATE_SENSORY_BUFFER, IntentType.START_RECOVERY_PROTOCOL]


@pytest.mark.asyncio
async def test_dispatcher_times_out_slow_actuators():
    dispatcher = IntentDispatcher(timeout=0.01)

    async def slow(intent):
        await asyncio.sleep(1)

    dispatcher.register("calendar", slow)
    intent = SideEffectIntent(
        user_id="u1",
        intent=IntentType.INSERT_CALENDAR_BLOCK,
        actuator="calendar",
        dedupe_key="block-1"
    )

    assert await dispatcher.dispatch([intent]) == 0


@pytest.mark.asyncio
async def test_submitted_intents_keep_per_user_order():
    dispatcher = IntentDispatcher()
    gate = asyncio.Event()
    other_user_done = asyncio.Event()
    performed = []

    async def ui(intent):
        if intent.user_id == "u1":
            await gate.wait()
        performed.append(intent.dedupe_key)
        if intent.user_id == "u2":
            other_user_done.set()

    dispatcher.register("ui", ui)

    def intent(user_id, key):
        return SideEffectIntent(user_id=user_id, intent=IntentType.ACTIVATE_SENSORY_BUFFER, actuator="ui", dedupe_key=key)

    assert dispatcher.submit([intent("u1", "a")]) == 1
    assert dispatcher.submit([intent("u1", "b"), intent("u2", "c"), intent("u1", "a")]) == 2

    await asyncio.wait_for(other_user_done.wait(), 1.0)
    assert performed == ["c"]

    gate.set()
    await dispatcher.flush()
    assert performed == ["c", "a", "b"]
