from typing import Any, Dict, List

# Messages shown to the user when routing short-circuits or fails
INTERVENTION_MESSAGE = "Task blocked. Load is critical. 5-minute breathing buffer initiated."
BUFFERED_MESSAGE = "Message cached. Flow state preserved."
IGNORED_MESSAGE = "Action type not recognized."
INVALID_REQUEST_MESSAGE = "Action request is invalid."

TASK_SUCCESS_MESSAGE = "Task decomposed into micro-steps."
TASK_FAILURE_MESSAGE = "Task decomposition unavailable. Showing a generic starting plan."
COMMUNICATION_SUCCESS_MESSAGE = "Message translated."
COMMUNICATION_FAILURE_MESSAGE = "Translation failed due to high cognitive load."
MEETING_SUCCESS_MESSAGE = "Meeting block scheduled."
MEETING_FAILURE_MESSAGE = "Meeting could not be scheduled."

BREATHING_BUFFER_MINUTES = 5
RECOVERY_BLOCK_MINUTES = 15


def task_fallback_steps() -> List[Dict[str, Any]]:
    return [
        {"id": "open-workspace", "step": "Open the file or tool you need for this task", "estimated_minutes": 1, "friction_point": "starting feels heavy"},
        {"id": "write-goal", "step": "Write one sentence describing what done looks like", "estimated_minutes": 2, "friction_point": "unclear end state"},
        {"id": "smallest-piece", "step": "Pick the smallest piece you can finish right now", "estimated_minutes": 3, "friction_point": "too many options"},
        {"id": "work-block", "step": "Work on that piece for five minutes", "estimated_minutes": 5, "friction_point": "sustaining attention"},
        {"id": "note-next", "step": "Write down the next piece before stopping", "estimated_minutes": 2, "friction_point": "losing the thread"},
    ]


def communication_fallback(text: str) -> Dict[str, Any]:
    return {
        "translated_text": text,
        "tone_adjustments": [],
        "masking_energy_saved_minutes": 0
    }
