"""Shared pytest fixtures for SAINT backend tests."""

from __future__ import annotations

import json
import sys
import textwrap
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.websockets import WebSocketState

from saint.config import Settings
from saint.core.artifacts import ArtifactCollector
from saint.core.process import ProcessRunner
from saint.core.scheduler import ExecutionScheduler
from saint.core.workspace import WorkspaceBuilder
from saint.db.session import create_engine, create_session_factory, init_db
from saint.schemas.execution import TestDefinition
from saint.services.store import RecordStore
from saint.streaming import StreamingHub

# Stands in for the Playwright CLI: reads the rendered config for the report
# locations, then executes the spec body as Python with them in scope.
FAKE_RUNNER = textwrap.dedent(
    """
    import json, pathlib, re, sys

    config = pathlib.Path("playwright.config.ts").read_text()
    output_dir = json.loads(re.search(r"outputDir: (\\".*?\\"),", config).group(1))
    json_report = json.loads(re.search(r"\\['json', \\{ outputFile: (\\".*?\\") \\}\\]", config).group(1))
    spec = next(pathlib.Path(".").glob("*.spec.ts"))
    exec(
        compile(spec.read_text(), spec.name, "exec"),
        {"OUTPUT_DIR": output_dir, "JSON_REPORT": json_report, "__name__": "__main__"},
    )
    """
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_definition(
    code: str = "print('ok')",
    *,
    test_id: str | None = None,
    **run_config: Any,
) -> TestDefinition:
    """Create a TestDefinition whose spec body the fake runner executes."""
    return TestDefinition(
        id=test_id or f"test-{uuid4().hex[:8]}",
        prompt="Open the home page and check the title",
        test_type="ui",
        code=textwrap.dedent(code),
        run_config=run_config,
    )


def make_websocket() -> MagicMock:
    """Create a mock connected WebSocket that records what is sent to it."""
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.client_state = WebSocketState.CONNECTED
    return ws


def sent_events(ws: MagicMock) -> list[dict[str, Any]]:
    """Decode every event sent to a mock WebSocket, in order."""
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


def events_of_type(ws: MagicMock, event_type: str) -> list[dict[str, Any]]:
    return [e for e in sent_events(ws) if e.get("type") == event_type]


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_runner(tmp_path: Path) -> Path:
    script = tmp_path / "fake_runner.py"
    script.write_text(FAKE_RUNNER, encoding="utf-8")
    return script


@pytest.fixture
def settings(tmp_path: Path, fake_runner: Path) -> Settings:
    """Settings rooted in tmp_path, running the fake runner without installs."""
    data = tmp_path / "data"
    s = Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'saint-test.db'}",
        results_dir=data / "results",
        screenshots_dir=data / "screenshots",
        videos_dir=data / "videos",
        traces_dir=data / "traces",
        workspaces_dir=data / "workspaces",
        max_concurrent_tests=2,
        install_dependencies=False,
        runner_command=[sys.executable, str(fake_runner)],
    )
    s.ensure_storage()
    return s


@pytest.fixture
def websocket() -> MagicMock:
    return make_websocket()


@pytest.fixture
def hub(websocket: MagicMock) -> StreamingHub:
    """Hub with one connected observer socket."""
    hub = StreamingHub(idle_timeout=1.0, sweep_interval=0.05)
    hub.add_connection(websocket, "observer")
    return hub


@pytest.fixture
async def db_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine: AsyncEngine) -> RecordStore:
    return RecordStore(create_session_factory(db_engine))


@pytest.fixture
def scheduler_factory(settings: Settings, hub: StreamingHub, store: RecordStore):
    """Build a scheduler over real collaborators, optionally overriding settings."""

    def _make(**overrides: Any) -> ExecutionScheduler:
        s = settings.model_copy(update=overrides)
        return ExecutionScheduler(
            capacity=s.max_concurrent_tests,
            hub=hub,
            workspace_builder=WorkspaceBuilder(s),
            runner=ProcessRunner(s, hub),
            collector=ArtifactCollector(s),
            store=store,
        )

    return _make


@pytest.fixture
def scheduler(scheduler_factory) -> ExecutionScheduler:
    return scheduler_factory()


@pytest.fixture
async def app(settings: Settings, store: RecordStore, db_engine: AsyncEngine, hub: StreamingHub):
    """Application wired like the lifespan does, over the test settings."""
    from saint.main import build_services, create_application

    application = create_application(settings)
    build_services(application, settings, store, hub=hub)
    application.state.engine = db_engine
    yield application
    await application.state.scheduler.shutdown()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client over the ASGI app."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
