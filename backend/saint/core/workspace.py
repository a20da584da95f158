"""Per-execution workspace directories.

Each execution gets ``{workspaces_dir}/execution-{session_id}`` holding the
generated spec, a rendered ``playwright.config.ts``, the resolved run config
and a ``package.json`` so the runner can install its own tooling. The
directory lives from admission until the result is persisted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from saint.config import Settings
from saint.schemas.execution import RunConfig, TestDefinition

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
CONFIG_FILENAME = "playwright.config.ts"
RUN_CONFIG_FILENAME = "run-config.json"
MANIFEST_FILENAME = "package.json"

HTML_REPORT_DIRNAME = "html-report"
JSON_REPORT_FILENAME = "results.json"
JUNIT_REPORT_FILENAME = "results.xml"
TEST_OUTPUT_DIRNAME = "test-output"

_DEVICE_PROFILES: dict[str, str] = {
    "chromium": "Desktop Chrome",
    "chrome": "Desktop Chrome",
    "firefox": "Desktop Firefox",
    "webkit": "Desktop Safari",
    "safari": "Desktop Safari",
    "edge": "Desktop Edge",
}


def device_profile(browser: str | None) -> str:
    """Map an abstract browser name to a Playwright device profile.

    Unrecognized names fall back to the Chromium profile.
    """
    return _DEVICE_PROFILES.get((browser or "").strip().lower(), "Desktop Chrome")


def _safe_filename(name: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in name).strip("._")
    return cleaned or "test"


class WorkspaceBuilder:
    """Materializes and removes isolated execution directories."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=False,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def workspace_path(self, session_id: str) -> Path:
        return (self.settings.workspaces_dir / f"execution-{session_id}").resolve()

    def results_path(self, session_id: str) -> Path:
        """Durable results directory the runner writes into for *session_id*."""
        return (self.settings.results_dir / session_id).resolve()

    def render_config(self, run_config: RunConfig, session_id: str) -> str:
        """Render the runner configuration for one session."""
        results = self.results_path(session_id)
        template = self.env.get_template(f"{CONFIG_FILENAME}.j2")
        return template.render(
            config=run_config,
            device=device_profile(run_config.browser),
            output_dir=str(results / TEST_OUTPUT_DIRNAME),
            html_report_dir=str(results / HTML_REPORT_DIRNAME),
            json_report=str(results / JSON_REPORT_FILENAME),
            junit_report=str(results / JUNIT_REPORT_FILENAME),
        )

    def render_manifest(self, session_id: str) -> dict[str, object]:
        return {
            "name": f"saint-test-{session_id}".lower(),
            "version": "1.0.0",
            "private": True,
            "dependencies": {
                "@playwright/test": self.settings.playwright_version,
            },
        }

    def spec_filename(self, definition: TestDefinition) -> str:
        return f"{_safe_filename(definition.id)}.spec.ts"

    async def build(self, definition: TestDefinition, session_id: str) -> Path:
        """Create the workspace for *session_id* and return its path."""
        return await asyncio.to_thread(self._build_sync, definition, session_id)

    def _build_sync(self, definition: TestDefinition, session_id: str) -> Path:
        workspace = self.workspace_path(session_id)
        workspace.mkdir(parents=True, exist_ok=True)
        # a reused session id must not see the previous run's report or artifacts
        results = self.results_path(session_id)
        shutil.rmtree(results, ignore_errors=True)
        results.mkdir(parents=True)

        (workspace / self.spec_filename(definition)).write_text(definition.code, encoding="utf-8")
        (workspace / CONFIG_FILENAME).write_text(
            self.render_config(definition.run_config, session_id), encoding="utf-8"
        )
        (workspace / RUN_CONFIG_FILENAME).write_text(
            definition.run_config.model_dump_json(indent=2), encoding="utf-8"
        )
        (workspace / MANIFEST_FILENAME).write_text(
            json.dumps(self.render_manifest(session_id), indent=2), encoding="utf-8"
        )

        logger.info("workspace: built %s for test %s", workspace, definition.id)
        return workspace

    async def teardown(self, workspace: Path) -> None:
        """Remove *workspace*. Idempotent; failures are logged, never raised."""
        try:
            await asyncio.to_thread(shutil.rmtree, workspace)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("workspace: cleanup of %s failed: %s", workspace, exc)
            return
        logger.debug("workspace: removed %s", workspace)
