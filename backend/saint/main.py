"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.requests import Request

from saint.api.v1 import router as api_v1_router
from saint.config import Settings, configure_logging, settings
from saint.core.artifacts import ArtifactCollector
from saint.core.process import ProcessRunner
from saint.core.scheduler import ExecutionScheduler
from saint.core.tracing import setup_telemetry
from saint.core.workspace import WorkspaceBuilder
from saint.db.session import create_engine, create_session_factory, init_db
from saint.services.store import RecordStore
from saint.streaming import StreamingHub, ws_stream_endpoint

logger = logging.getLogger(__name__)


def build_services(
    app: FastAPI,
    settings: Settings,
    store: RecordStore,
    hub: StreamingHub | None = None,
) -> None:
    """Construct the execution core and attach it to ``app.state``."""
    if hub is None:
        hub = StreamingHub(
            idle_timeout=settings.stream_idle_timeout_seconds,
            sweep_interval=settings.stream_sweep_interval_seconds,
        )
    app.state.hub = hub
    app.state.store = store
    app.state.scheduler = ExecutionScheduler(
        capacity=settings.max_concurrent_tests,
        hub=hub,
        workspace_builder=WorkspaceBuilder(settings),
        runner=ProcessRunner(settings, hub),
        collector=ArtifactCollector(settings),
        store=store,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager."""
    settings: Settings = app.state.settings
    # Startup
    configure_logging(settings)
    settings.ensure_storage()
    setup_telemetry(settings)
    engine = create_engine(settings.database_url, echo=settings.debug)
    await init_db(engine)
    app.state.engine = engine
    build_services(app, settings, RecordStore(create_session_factory(engine)))
    app.state.hub.start_sweeper()
    logger.info(
        "%s %s started (max %d concurrent executions)",
        settings.app_name,
        settings.app_version,
        settings.max_concurrent_tests,
    )
    yield
    # Shutdown
    await app.state.hub.send_system_notification("Server shutting down", level="warning")
    await app.state.hub.stop_sweeper()
    await app.state.scheduler.shutdown()
    await engine.dispose()


def create_application(settings: Settings = settings) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Test execution backend with bounded concurrency and live streaming",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        """Return JSON 500 for anything the routes did not handle."""
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.websocket("/ws")
    async def ws_stream(websocket: WebSocket) -> None:
        await ws_stream_endpoint(websocket, websocket.app.state.hub)

    app.include_router(api_v1_router, prefix="/api")

    # Artifacts produced by executions
    for mount, directory in (
        ("/screenshots", settings.screenshots_dir),
        ("/videos", settings.videos_dir),
        ("/traces", settings.traces_dir),
        ("/results", settings.results_dir),
    ):
        app.mount(
            mount,
            StaticFiles(directory=str(directory), check_dir=False),
            name=mount.strip("/"),
        )

    return app


app = create_application()
