from typing import Dict, Optional, Set
from fastapi import WebSocket
import asyncio
import uuid
import structlog

from neuroflow.application.websocket.schema.events import BaseEvent, ConnectionEvent, ErrorEvent
from neuroflow.domain.models.cognitive_state import utcnow

logger = structlog.get_logger(__name__)

TELEMETRY_ROLE = "telemetry"
DASHBOARD_ROLE = "dashboard"


class ConnectionManager:
    """Tracks telemetry and dashboard sockets and routes events to them"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_metadata: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, role: str, user_id: Optional[str] = None) -> str:
        """Accept a new WebSocket connection and return its id"""
        await websocket.accept()

        connection_id = str(uuid.uuid4())
        async with self._lock:
            self.active_connections[connection_id] = websocket
            self.connection_metadata[connection_id] = {
                "role": role,
                "user_id": user_id,
                "connected_at": utcnow(),
                "last_activity": utcnow()
            }

        await self.send_event(connection_id, ConnectionEvent(status="connected", role=role))

        logger.info("WebSocket connected", connection_id=connection_id, role=role, user_id=user_id)
        return connection_id

    async def disconnect(self, connection_id: str, close: bool = True):
        """Forget a connection, closing it unless the client already went away"""
        async with self._lock:
            ws = self.active_connections.pop(connection_id, None)
            self.connection_metadata.pop(connection_id, None)

        if ws is not None and close:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("Error closing WebSocket", connection_id=connection_id, error=str(e))

        logger.info("WebSocket disconnected", connection_id=connection_id)

    async def send_event(self, connection_id: str, event: BaseEvent) -> bool:
        """Send an event to one connection"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.warning("Attempted to send to disconnected socket", connection_id=connection_id)
            return False

        try:
            await websocket.send_json(event.model_dump(mode="json"))
            if connection_id in self.connection_metadata:
                self.connection_metadata[connection_id]["last_activity"] = utcnow()
            return True

        except Exception as e:
            logger.error("Failed to send event", connection_id=connection_id, error=str(e))
            await self.disconnect(connection_id, close=False)
            return False

    async def broadcast_to_dashboards(self, event: BaseEvent):
        """Send an event to every dashboard subscriber"""
        connections = self.get_active_connections(DASHBOARD_ROLE)
        tasks = [self.send_event(connection_id, event) for connection_id in connections]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def send_error(self, connection_id: str, error_message: str, error_code: Optional[str] = None):
        await self.send_event(
            connection_id,
            ErrorEvent(payload={"message": error_message}, error_code=error_code)
        )

    def get_active_connections(self, role: Optional[str] = None) -> Set[str]:
        """Get active connection ids, optionally filtered by role"""
        if role:
            return {
                connection_id
                for connection_id, metadata in self.connection_metadata.items()
                if metadata.get("role") == role
            }
        return set(self.active_connections.keys())
