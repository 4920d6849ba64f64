from fastapi import Request

from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.application.websocket.connection_manager import ConnectionManager


def get_core(request: Request) -> CognitiveCore:
    return request.app.state.core


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager
