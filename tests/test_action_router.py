from datetime import datetime, timezone
from typing import Dict
from unittest.mock import AsyncMock
import json

import pytest

from conftest import REPORT_FRIDAY
from neuroflow.domain.context.memory.runtime_memory import CommunicationBuffer
from neuroflow.domain.context.memory.vector_memory_store import VectorMemoryStore
from neuroflow.domain.errors import BackendUnavailable, ErrorKind
from neuroflow.domain.models.action import (
    ActionStatus,
    CommunicationPayload,
    InitiateTaskRequest,
    ProcessCommunicationRequest,
    TaskPayload,
)
from neuroflow.domain.models.cognitive_state import CognitiveState, IntentType
from neuroflow.domain.models.memory import MemoryEntry
from neuroflow.domain.orchestration.core.action_router import ActionRouter
from neuroflow.domain.orchestration.executors.communication_executor import CommunicationExecutor
from neuroflow.domain.orchestration.executors.fallbacks import (
    BUFFERED_MESSAGE,
    COMMUNICATION_FAILURE_MESSAGE,
    IGNORED_MESSAGE,
    INTERVENTION_MESSAGE,
    task_fallback_steps,
)
from neuroflow.domain.orchestration.executors.meeting_executor import MeetingExecutor
from neuroflow.domain.orchestration.executors.task_executor import TaskExecutor

STEPS = [
    {"id": "open-doc", "step": "Open a blank document", "estimated_minutes": 1, "friction_point": "blank page dread"},
    {"id": "outline", "step": "Write three headings", "estimated_minutes": 3, "friction_point": "unclear structure"},
    {"id": "first-para", "step": "Draft the first paragraph", "estimated_minutes": 5, "friction_point": "perfectionism"},
    {"id": "review", "step": "Read it once aloud", "estimated_minutes": 2, "friction_point": "self criticism"},
    {"id": "send", "step": "Send it to your lead", "estimated_minutes": 1, "friction_point": "fear of judgement"},
]

TRANSLATION = {
    "translated_text": "Could we take another look at this together?",
    "tone_adjustments": ["Replaced a command with a question"],
    "masking_energy_saved_minutes": 10,
}


def task_request(user_id: str = "u1", description: str = "Write the quarterly report") -> InitiateTaskRequest:
    return InitiateTaskRequest(user_id=user_id, payload=TaskPayload(description=description))


def communication_request(user_id: str = "u1", text: str = "This is wrong. Fix it.") -> ProcessCommunicationRequest:
    return ProcessCommunicationRequest(user_id=user_id, payload=CommunicationPayload(text=text))


@pytest.fixture
def states() -> Dict[str, CognitiveState]:
    return {}


@pytest.fixture
def buffer():
    return CommunicationBuffer()


@pytest.fixture
def router(states, buffer, generation, cache, sanitizer, memory_store):
    return ActionRouter(
        state_reader=lambda user_id: states.get(user_id, CognitiveState.NORMAL),
        buffer=buffer,
        executors=[
            TaskExecutor(generation, cache, sanitizer),
            CommunicationExecutor(generation, cache, sanitizer, memory_store),
            MeetingExecutor(),
        ]
    )


@pytest.mark.asyncio
async def test_overload_blocks_tasks_without_backend_call(router, states, generation):
    states["u1"] = CognitiveState.OVERLOAD
    generation.generate.side_effect = AssertionError("generation must not be called")

    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.INTERVENTION
    assert result.message == INTERVENTION_MESSAGE
    assert [intent.intent for intent in result.side_effects] == [IntentType.START_RECOVERY_PROTOCOL]
    generation.generate.assert_not_called()


@pytest.mark.asyncio
async def test_hyperfocus_buffers_communication_without_backend_call(router, states, generation, buffer):
    states["u1"] = CognitiveState.HYPERFOCUS
    generation.generate.side_effect = AssertionError("generation must not be called")

    result = await router.route("u1", communication_request())

    assert result.status == ActionStatus.BUFFERED
    assert result.message == BUFFERED_MESSAGE
    assert result.data == {"buffered_count": 1}
    generation.generate.assert_not_called()

    drained = await buffer.drain("u1")
    assert [message["text"] for message in drained] == ["This is wrong. Fix it."]
    assert await buffer.drain("u1") == []


@pytest.mark.asyncio
async def test_overload_still_allows_communication(router, states, generation):
    states["u1"] = CognitiveState.OVERLOAD
    generation.generate.return_value = json.dumps(TRANSLATION)

    result = await router.route("u1", communication_request())

    assert result.status == ActionStatus.SUCCESS


@pytest.mark.asyncio
async def test_task_success_is_cached(router, generation):
    generation.generate.return_value = "```json\n" + json.dumps(STEPS) + "\n```"

    first = await router.route("u1", task_request())
    second = await router.route("u1", task_request())

    assert first.status == ActionStatus.SUCCESS
    assert first.data == {"steps": STEPS}
    assert not first.cached
    assert second.data == first.data
    assert second.cached
    generation.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_unparseable_generation_returns_static_fallback(router, generation):
    generation.generate.return_value = "I could not think of any steps, sorry."

    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.ERROR
    assert result.fallback
    assert result.error_kind == ErrorKind.SANITIZATION_FAILED
    assert result.data == {"steps": task_fallback_steps()}


@pytest.mark.asyncio
async def test_failed_generation_is_not_cached(router, generation):
    generation.generate.return_value = "no json"
    await router.route("u1", task_request())

    generation.generate.return_value = json.dumps(STEPS)
    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.SUCCESS
    assert generation.generate.await_count == 2


@pytest.mark.asyncio
async def test_backend_failure_returns_original_text(router, generation):
    generation.generate.side_effect = BackendUnavailable("Generation timed out")

    result = await router.route("u1", communication_request(text="No. Do it my way."))

    assert result.status == ActionStatus.ERROR
    assert result.message == COMMUNICATION_FAILURE_MESSAGE
    assert result.error_kind == ErrorKind.BACKEND_UNAVAILABLE
    assert result.fallback
    assert result.data["translated_text"] == "No. Do it my way."


@pytest.mark.asyncio
async def test_unexpected_executor_error_still_falls_back(router, generation):
    generation.generate.side_effect = RuntimeError("boom")

    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.ERROR
    assert result.fallback


@pytest.mark.asyncio
async def test_stale_is_treated_as_normal(router, states, generation):
    states["u1"] = CognitiveState.STALE
    generation.generate.return_value = json.dumps(STEPS)

    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.SUCCESS


@pytest.mark.asyncio
async def test_unknown_type_is_ignored(router):
    result = await router.route("u1", {"type": "order_pizza", "user_id": "u1", "payload": {}})

    assert result.status == ActionStatus.IGNORED
    assert result.message == IGNORED_MESSAGE


@pytest.mark.asyncio
async def test_malformed_payload_is_input_invalid(router, generation):
    result = await router.route("u1", {"type": "initiate_task", "user_id": "u1", "payload": {"description": ""}})

    assert result.status == ActionStatus.ERROR
    assert result.error_kind == ErrorKind.INPUT_INVALID
    assert not result.fallback
    generation.generate.assert_not_called()


@pytest.mark.asyncio
async def test_user_mismatch_is_input_invalid(router):
    result = await router.route("someone-else", task_request(user_id="u1"))

    assert result.status == ActionStatus.ERROR
    assert result.error_kind == ErrorKind.INPUT_INVALID


@pytest.mark.asyncio
async def test_missing_executor_is_ignored(states, buffer):
    router = ActionRouter(state_reader=lambda user_id: CognitiveState.NORMAL, buffer=buffer)

    result = await router.route("u1", task_request())

    assert result.status == ActionStatus.IGNORED


@pytest.mark.asyncio
async def test_dict_requests_are_decoded(router, generation):
    generation.generate.return_value = json.dumps(STEPS)

    result = await router.route("u1", {
        "type": "initiate_task",
        "user_id": "u1",
        "payload": {"description": "Clean the inbox", "estimated_minutes": 20}
    })

    assert result.status == ActionStatus.SUCCESS


@pytest.mark.asyncio
async def test_meeting_adds_recovery_block_when_approaching_overload(router, states):
    states["u1"] = CognitiveState.APPROACHING_OVERLOAD
    request = {
        "type": "schedule_meeting",
        "user_id": "u1",
        "payload": {"title": "Sprint review", "start": "2026-10-20T15:00:00+00:00", "duration_minutes": 45}
    }

    result = await router.route("u1", request)

    assert result.status == ActionStatus.SUCCESS
    blocks = [intent.parameters for intent in result.side_effects]
    assert [block["kind"] for block in blocks] == ["meeting", "recovery"]
    assert blocks[1]["start"] == datetime(2026, 10, 20, 15, 45, tzinfo=timezone.utc).isoformat()
    assert blocks[1]["end"] == datetime(2026, 10, 20, 16, 0, tzinfo=timezone.utc).isoformat()


@pytest.mark.asyncio
async def test_meeting_without_rising_load_has_one_block(router):
    result = await router.route("u1", {
        "type": "schedule_meeting",
        "user_id": "u1",
        "payload": {"title": "1:1", "start": "2026-10-20T09:00:00+00:00"}
    })

    assert [intent.intent for intent in result.side_effects] == [IntentType.INSERT_CALENDAR_BLOCK]


@pytest.mark.asyncio
async def test_communication_prompt_includes_recalled_memory(router, generation, memory_store):
    await memory_store.upsert(MemoryEntry(user_id="u1", content=REPORT_FRIDAY))
    generation.generate.return_value = json.dumps(TRANSLATION)

    # Mapped test embeddings put unknown text on a separate axis, so recall by exact content
    result = await router.route("u1", communication_request(text=REPORT_FRIDAY))

    assert result.status == ActionStatus.SUCCESS
    assert result.data == TRANSLATION
    prompt = generation.generate.await_args.args[0]
    assert "Context retrieved from the user's memory" in prompt
    assert f"- {REPORT_FRIDAY}" in prompt


@pytest.mark.asyncio
async def test_recall_failure_is_skipped(generation, cache, sanitizer, states, buffer):
    memory = AsyncMock(spec=VectorMemoryStore)
    memory.search_content_only.side_effect = BackendUnavailable("supabase down")
    router = ActionRouter(
        state_reader=lambda user_id: CognitiveState.NORMAL,
        buffer=buffer,
        executors=[CommunicationExecutor(generation, cache, sanitizer, memory)]
    )
    generation.generate.return_value = json.dumps(TRANSLATION)

    result = await router.route("u1", communication_request())

    assert result.status == ActionStatus.SUCCESS
    memory.search_content_only.assert_awaited_once_with("This is wrong. Fix it.", user_id="u1", top_k=3)
    assert "Context retrieved" not in generation.generate.await_args.args[0]
