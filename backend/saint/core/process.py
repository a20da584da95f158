"""Test-runner subprocess supervision.

One ``ProcessRunner.run`` call owns one OS process: it installs the
workspace's tooling, spawns the runner in CI mode, streams both pipes line by
line to the streaming hub and reports the exit as an ExecutionResult.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from saint.config import Settings
from saint.core.exceptions import DependencyInstallError, ProcessSpawnError
from saint.schemas.execution import ExecutionResult, ExecutionStatus
from saint.streaming import StreamingHub

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[str], Awaitable[None]]

# StreamReader line buffer; runners can print long single-line JSON blobs
_STREAM_LIMIT = 1024 * 1024


async def _pump(stream: asyncio.StreamReader, buf: list[str], handler: ChunkHandler) -> None:
    """Read *stream* line by line, keeping order, and hand each line to *handler*."""
    while True:
        raw = await stream.readline()
        if not raw:
            break
        chunk = raw.decode("utf-8", errors="replace")
        buf.append(chunk)
        await handler(chunk)


class ProcessRunner:
    """Spawns and supervises the external test runner."""

    def __init__(self, settings: Settings, hub: StreamingHub) -> None:
        self.settings = settings
        self.hub = hub

    def _environment(self) -> dict[str, str]:
        return {**os.environ, "CI": "true", "FORCE_COLOR": "0"}

    async def _install_failed(
        self, session_id: str, message: str, exit_code: int | None = None
    ) -> DependencyInstallError:
        await self.hub.broadcast(
            {"type": "dependency-installation-error", "session_id": session_id, "error": message}
        )
        return DependencyInstallError(message, session_id, exit_code=exit_code)

    async def install_dependencies(self, workspace: Path, session_id: str) -> None:
        """Resolve the workspace's runtime dependencies.

        Raises DependencyInstallError on spawn failure, timeout or a non-zero
        exit. The test runner is never started after a failure here.
        """
        cmd = list(self.settings.install_command)
        await self.hub.broadcast({"type": "dependency-installation-started", "session_id": session_id})
        logger.info("runner: installing dependencies for %s: %s", session_id, " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(workspace),
                env=self._environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise await self._install_failed(
                session_id, f"Dependency installation could not start: {exc}"
            ) from exc

        async def _on_output(chunk: str) -> None:
            await self.hub.broadcast({"type": "dependency-output", "session_id": session_id, "data": chunk})

        async def _on_error(chunk: str) -> None:
            await self.hub.broadcast({"type": "dependency-error", "session_id": session_id, "data": chunk})

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        pumps = asyncio.gather(
            _pump(proc.stdout, stdout_lines, _on_output),  # type: ignore[arg-type]
            _pump(proc.stderr, stderr_lines, _on_error),  # type: ignore[arg-type]
        )
        try:
            await asyncio.wait_for(pumps, timeout=self.settings.dependency_install_timeout_seconds)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise await self._install_failed(
                session_id,
                "Dependency installation timed out after "
                f"{self.settings.dependency_install_timeout_seconds:g}s",
            ) from exc

        returncode = await proc.wait()
        if returncode != 0:
            tail = "".join((stdout_lines + stderr_lines)[-5:]).strip()
            logger.warning("runner: install for %s exited %s: %s", session_id, returncode, tail[:300])
            raise await self._install_failed(
                session_id,
                f"Dependency installation failed with exit code {returncode}",
                exit_code=returncode,
            )

        await self.hub.broadcast({"type": "dependency-installation-completed", "session_id": session_id})

    async def run(
        self,
        workspace: Path,
        session_id: str,
        on_output: ChunkHandler | None = None,
        on_error: ChunkHandler | None = None,
        *,
        test_id: str = "",
        execution_id: str | None = None,
    ) -> ExecutionResult:
        """Run the test runner in *workspace* and return its raw result."""
        if self.settings.install_dependencies:
            await self.install_dependencies(workspace, session_id)

        async def _default_output(chunk: str) -> None:
            await self.hub.broadcast({"type": "test-output", "session_id": session_id, "data": chunk})

        async def _default_error(chunk: str) -> None:
            await self.hub.broadcast({"type": "test-error", "session_id": session_id, "data": chunk})

        on_output = on_output or _default_output
        on_error = on_error or _default_error

        cmd = list(self.settings.runner_command)
        started_at = datetime.now(timezone.utc)
        logger.info("runner: %s in cwd=%s", " ".join(cmd), workspace)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(workspace),
                env=self._environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            await self.hub.broadcast(
                {"type": "test-execution-error", "session_id": session_id, "error": str(exc)}
            )
            logger.error("runner: could not start %r for %s: %s", cmd[0], session_id, exc)
            raise ProcessSpawnError(f"Failed to start test process: {exc}", session_id) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        pumps = asyncio.gather(
            _pump(proc.stdout, stdout_lines, on_output),  # type: ignore[arg-type]
            _pump(proc.stderr, stderr_lines, on_error),  # type: ignore[arg-type]
        )

        timed_out = False
        deadline = self.settings.execution_timeout_seconds
        try:
            await asyncio.wait_for(pumps, timeout=deadline)
        except asyncio.TimeoutError:
            timed_out = True
            proc.kill()
            logger.warning("runner: %s exceeded %ss, killed", session_id, deadline)
            await on_error(f"[saint] test process killed after {deadline:g}s\n")

        exit_code = await proc.wait()
        ended_at = datetime.now(timezone.utc)
        duration_ms = int((ended_at - started_at).total_seconds() * 1000)
        status = ExecutionStatus.PASSED if exit_code == 0 and not timed_out else ExecutionStatus.FAILED

        await self.hub.broadcast({
            "type": "test-completed",
            "session_id": session_id,
            "result": {"status": status.value, "duration": duration_ms, "exit_code": exit_code},
        })
        logger.info("runner: %s exited %s in %dms", session_id, exit_code, duration_ms)

        return ExecutionResult(
            session_id=session_id,
            execution_id=execution_id or str(uuid4()),
            test_id=test_id,
            exit_code=exit_code,
            status=status,
            started_at=started_at,
            ended_at=ended_at,
            duration_ms=duration_ms,
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            timed_out=timed_out,
        )
