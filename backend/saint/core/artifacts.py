"""Artifact discovery, relocation and result summarization."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from saint.config import Settings
from saint.core.workspace import HTML_REPORT_DIRNAME, JSON_REPORT_FILENAME
from saint.schemas.execution import (
    Artifact,
    ArtifactKind,
    ArtifactManifest,
    ExecutionResult,
    ExecutionSummary,
    PerformanceSummary,
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg"})
VIDEO_EXTENSIONS = frozenset({".webm", ".mp4"})
TRACE_EXTENSIONS = frozenset({".zip"})


def classify(path: Path) -> ArtifactKind | None:
    """Classify a produced file by its path segments and extension.

    Anything under the HTML report directory belongs to the report, even
    images and archives the reporter copied there.
    """
    if HTML_REPORT_DIRNAME in path.parts[:-1]:
        return ArtifactKind.REPORT
    suffix = path.suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return ArtifactKind.SCREENSHOT
    if suffix in VIDEO_EXTENSIONS:
        return ArtifactKind.VIDEO
    if suffix in TRACE_EXTENSIONS and "trace" in path.name.lower():
        return ArtifactKind.TRACE
    return None


def _nodes(value: Any) -> list[dict[str, Any]]:
    """Dict members of a report list; anything else in the tree is ignored."""
    if not isinstance(value, list):
        return []
    return [node for node in value if isinstance(node, dict)]


def count_outcomes(suites: list[dict[str, Any]]) -> dict[str, int]:
    """Tally sub-test outcomes over an arbitrarily deep suite tree.

    ``expected`` counts as passed, ``unexpected`` as failed, anything else as
    skipped. Nodes that are not objects are skipped.
    """
    counts = {"test_count": 0, "passed_count": 0, "failed_count": 0, "skipped_count": 0}
    stack = list(reversed(_nodes(suites)))
    while stack:
        suite = stack.pop()
        for spec in _nodes(suite.get("specs")):
            for test in _nodes(spec.get("tests")):
                counts["test_count"] += 1
                outcome = test.get("outcome")
                if outcome == "expected":
                    counts["passed_count"] += 1
                elif outcome == "unexpected":
                    counts["failed_count"] += 1
                else:
                    counts["skipped_count"] += 1
        stack.extend(reversed(_nodes(suite.get("suites"))))
    return counts


def summarize(result: ExecutionResult) -> ExecutionSummary:
    """Derive counts and timing for *result*."""
    counts = {"test_count": 0, "passed_count": 0, "failed_count": 0, "skipped_count": 0}
    detailed = result.detailed_results or {}
    if isinstance(detailed.get("suites"), list):
        counts = count_outcomes(detailed["suites"])

    test_count = counts["test_count"]
    return ExecutionSummary(
        status=result.status,
        duration_ms=result.duration_ms,
        exit_code=result.exit_code,
        artifact_counts=result.artifacts.counts(),
        performance=PerformanceSummary(
            execution_time_ms=result.duration_ms,
            avg_test_time_ms=result.duration_ms / test_count if test_count else 0,
        ),
        **counts,
    )


def _dir_size(path: Path) -> int:
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())


class ArtifactCollector:
    """Moves run byproducts into durable storage and builds the final result."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._buckets: dict[ArtifactKind, tuple[Path, str]] = {
            ArtifactKind.SCREENSHOT: (settings.screenshots_dir, "/screenshots"),
            ArtifactKind.VIDEO: (settings.videos_dir, "/videos"),
            ArtifactKind.TRACE: (settings.traces_dir, "/traces"),
            ArtifactKind.REPORT: (settings.results_dir, "/results"),
        }

    def results_path(self, session_id: str) -> Path:
        return (self.settings.results_dir / session_id).resolve()

    def result_document_path(self, session_id: str) -> Path:
        return self.settings.results_dir / f"{session_id}-result.json"

    def discover(self, results_root: Path) -> dict[ArtifactKind, list[Path]]:
        """Walk *results_root* and group produced files by kind."""
        found: dict[ArtifactKind, list[Path]] = {kind: [] for kind in ArtifactKind}
        if not results_root.is_dir():
            return found
        for path in sorted(results_root.rglob("*")):
            if not path.is_file():
                continue
            kind = classify(path.relative_to(results_root))
            if kind is not None and kind is not ArtifactKind.REPORT:
                found[kind].append(path)
        return found

    def _copy_file(self, source: Path, kind: ArtifactKind, session_id: str) -> Artifact:
        bucket, url_root = self._buckets[kind]
        bucket.mkdir(parents=True, exist_ok=True)
        filename = f"{session_id}-{source.name}"
        target = bucket / filename
        n = 1
        # same basename from two test directories of one run
        while target.exists():
            filename = f"{session_id}-{source.stem}-{n}{source.suffix}"
            target = bucket / filename
            n += 1
        shutil.copy2(source, target)
        return Artifact(
            filename=filename,
            path=str(target),
            url=f"{url_root}/{filename}",
            size=target.stat().st_size,
            captured_at=datetime.now(timezone.utc),
            kind=kind,
        )

    def _copy_report(self, report_dir: Path, session_id: str) -> Artifact:
        bucket, url_root = self._buckets[ArtifactKind.REPORT]
        dirname = f"{session_id}-{HTML_REPORT_DIRNAME}"
        target = bucket / dirname
        shutil.rmtree(target, ignore_errors=True)
        shutil.copytree(report_dir, target)
        return Artifact(
            filename=dirname,
            path=str(target),
            url=f"{url_root}/{dirname}/index.html",
            size=_dir_size(target),
            captured_at=datetime.now(timezone.utc),
            kind=ArtifactKind.REPORT,
        )

    def _collect_sync(self, results_root: Path, session_id: str) -> ArtifactManifest:
        manifest = ArtifactManifest()
        for kind, paths in self.discover(results_root).items():
            for path in paths:
                manifest.add(self._copy_file(path, kind, session_id))
        report_dir = results_root / HTML_REPORT_DIRNAME
        if report_dir.is_dir():
            manifest.add(self._copy_report(report_dir, session_id))
        return manifest

    async def collect(self, results_root: Path, session_id: str) -> ArtifactManifest:
        """Copy every artifact under *results_root* into durable storage."""
        return await asyncio.to_thread(self._collect_sync, results_root, session_id)

    @staticmethod
    def load_detailed_results(results_root: Path) -> dict[str, Any] | None:
        """Parse the structured JSON report if the runner produced one."""
        report = results_root / JSON_REPORT_FILENAME
        if not report.is_file():
            return None
        data = json.loads(report.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{report.name} is not a JSON object")
        return data

    async def process(self, result: ExecutionResult) -> ExecutionResult:
        """Attach detailed results, artifacts and summary to *result*.

        Discovery and parsing failures are recorded as ``processing_error``;
        the result is always returned.
        """
        session_id = result.session_id
        results_root = self.results_path(session_id)
        update: dict[str, Any] = {}

        try:
            update["detailed_results"] = await asyncio.to_thread(
                self.load_detailed_results, results_root
            )
            update["artifacts"] = await self.collect(results_root, session_id)
        except (OSError, ValueError) as exc:
            logger.warning("artifacts: processing %s failed: %s", session_id, exc)
            update["processing_error"] = str(exc)

        processed = result.model_copy(update=update)
        processed = processed.model_copy(update={"summary": summarize(processed)})

        try:
            await asyncio.to_thread(self._write_result_document, processed)
        except OSError as exc:
            logger.warning("artifacts: could not write result document for %s: %s", session_id, exc)
            processed = processed.model_copy(
                update={"processing_error": processed.processing_error or str(exc)}
            )

        logger.info(
            "artifacts: %s collected %s",
            session_id,
            ", ".join(f"{k}={v}" for k, v in processed.artifacts.counts().items()),
        )
        return processed

    def _write_result_document(self, result: ExecutionResult) -> None:
        path = self.result_document_path(result.session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
