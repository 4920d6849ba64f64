from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Body, Depends

from neuroflow.application.api.dependencies import get_connection_manager, get_core
from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.application.websocket.connection_manager import ConnectionManager
from neuroflow.application.websocket.schema.events import DashboardEvent
from neuroflow.domain.models.action import ActionResult
from neuroflow.domain.models.cognitive_state import ClassificationResult, UserStateSnapshot

router = APIRouter(tags=["cognitive"])

CoreDep = Annotated[CognitiveCore, Depends(get_core)]


# Telemetry from clients that do not hold a WebSocket open
@router.post("/telemetry", response_model=ClassificationResult)
async def ingest_telemetry(
    core: CoreDep,
    connection_manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
    sample: Dict[str, Any] = Body(...)
):
    result = await core.ingest_telemetry(sample)
    await connection_manager.broadcast_to_dashboards(DashboardEvent.from_result(result))
    return result


@router.get("/state/{user_id}", response_model=UserStateSnapshot)
async def get_state(user_id: str, core: CoreDep):
    return core.current_state(user_id)


# Routing never fails the request; problems come back as an error ActionResult
@router.post("/actions/{user_id}", response_model=ActionResult)
async def route_action(user_id: str, core: CoreDep, request: Dict[str, Any] = Body(...)):
    return await core.route_action(user_id, request)


@router.post("/actions/{user_id}/buffered/drain")
async def drain_buffered(user_id: str, core: CoreDep) -> Dict[str, List[Dict[str, Any]]]:
    return {"messages": await core.drain_buffered(user_id)}
