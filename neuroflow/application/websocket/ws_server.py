from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import structlog

from neuroflow.application.websocket.connection_manager import (
    DASHBOARD_ROLE,
    TELEMETRY_ROLE,
    ConnectionManager,
)
from neuroflow.application.websocket.schema.events import (
    ClassificationEvent,
    DashboardEvent,
    EventType,
    TelemetryMessage,
)
from neuroflow.domain.errors import CognitiveCoreError

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.websocket("/ws/telemetry/{user_id}")
async def telemetry_websocket(websocket: WebSocket, user_id: str):
    """Ingest telemetry pushed by the browser and answer with classifications"""

    core = websocket.app.state.core
    connection_manager: ConnectionManager = websocket.app.state.connection_manager

    connection_id = await connection_manager.connect(websocket, TELEMETRY_ROLE, user_id)

    try:
        while True:
            data = await websocket.receive_json()

            try:
                if not isinstance(data, dict) or data.get("type") != EventType.TELEMETRY.value:
                    await connection_manager.send_error(connection_id, "Unsupported event type", "unsupported_event")
                    continue

                message = TelemetryMessage.model_validate(data)
                sample = {"user_id": user_id, "signals": message.signals}
                if message.captured_at is not None:
                    sample["captured_at"] = message.captured_at

                result = await core.ingest_telemetry(sample)

                await connection_manager.send_event(connection_id, ClassificationEvent(payload=result))
                await connection_manager.broadcast_to_dashboards(DashboardEvent.from_result(result))

            except ValidationError as e:
                await connection_manager.send_error(connection_id, f"Invalid telemetry: {e.error_count()} errors", "input_invalid")
            except CognitiveCoreError as e:
                logger.warning("Telemetry rejected", user_id=user_id, error=e.message)
                await connection_manager.send_error(connection_id, e.message, e.kind.value)

    except WebSocketDisconnect:
        logger.info("Telemetry client disconnected", user_id=user_id)
        await connection_manager.disconnect(connection_id, close=False)
    except Exception as e:
        logger.error("Telemetry WebSocket error", error=str(e), user_id=user_id)
        await connection_manager.disconnect(connection_id)


@router.websocket("/ws/dashboard")
async def dashboard_websocket(websocket: WebSocket):
    """Anonymized score stream; client messages are ignored"""

    connection_manager: ConnectionManager = websocket.app.state.connection_manager
    connection_id = await connection_manager.connect(websocket, DASHBOARD_ROLE)

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await connection_manager.disconnect(connection_id, close=False)
    except Exception as e:
        logger.error("Dashboard WebSocket error", error=str(e))
        await connection_manager.disconnect(connection_id)
