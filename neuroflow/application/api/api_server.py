from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
import uuid

from neuroflow import __version__
from neuroflow.application.api.route import cognitive, memory
from neuroflow.application.bootstrap import build_core
from neuroflow.application.cognitive_core import CognitiveCore
from neuroflow.application.websocket import ws_server
from neuroflow.application.websocket.connection_manager import ConnectionManager
from neuroflow.domain.errors import CognitiveCoreError, ErrorKind
from neuroflow.domain.models.cognitive_state import utcnow
from neuroflow.infrastructure.config.settings import Settings, get_settings
from neuroflow.infrastructure.observability.langfuse_tracing import flush_tracing
from neuroflow.infrastructure.observability.logging import metrics, setup_logging

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

STATUS_BY_KIND = {
    ErrorKind.INPUT_INVALID: 422,
    ErrorKind.BACKEND_UNAVAILABLE: 503,
    ErrorKind.SANITIZATION_FAILED: 502,
    ErrorKind.INVARIANT_VIOLATION: 409,
}


def create_app(core: Optional[CognitiveCore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the HTTP and WebSocket surface; the core is assembled on startup unless given"""

    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Assemble the core if needed and keep its sweeper running until shutdown"""
        if app.state.core is None:
            app.state.core = build_core(settings)

        app.state.core.start()
        logger.info("Cognitive core server started")

        yield

        connection_manager = app.state.connection_manager
        for connection_id in list(connection_manager.active_connections.keys()):
            await connection_manager.disconnect(connection_id)

        await app.state.core.stop()
        flush_tracing()
        logger.info("Cognitive core server shutdown")

    app = FastAPI(title="NeuroFlow Cognitive Core", version=__version__, lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.core = core
    app.state.connection_manager = ConnectionManager()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        structlog.contextvars.bind_contextvars(request_id=request.headers.get("X-Request-ID") or str(uuid.uuid4()))
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

    @app.exception_handler(CognitiveCoreError)
    async def core_error_handler(request: Request, exc: CognitiveCoreError):
        status_code = STATUS_BY_KIND.get(exc.kind, 500)
        logger.warning("Request failed", path=request.url.path, error_kind=exc.kind.value, error=exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"error_kind": exc.kind.value, "message": exc.message, "details": exc.details}
        )

    @app.get("/health")
    @app.get(f"{API_PREFIX}/health")
    async def health_check():
        """Health check endpoint"""
        core = app.state.core
        return {
            "status": "healthy" if core is not None else "starting",
            "active_users": core.classifier.store.active_count() if core is not None else 0,
            "active_connections": len(app.state.connection_manager.active_connections),
            "metrics": metrics.get_metrics_summary(),
            "timestamp": utcnow().isoformat()
        }

    app.include_router(cognitive.router, prefix=API_PREFIX)
    app.include_router(memory.router, prefix=API_PREFIX)
    app.include_router(ws_server.router)

    return app


def main():
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
