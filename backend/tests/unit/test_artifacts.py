"""Unit tests for artifact classification, collection and summarization."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from saint.core.artifacts import ArtifactCollector, classify, count_outcomes, summarize
from saint.schemas.execution import ArtifactKind, ExecutionResult, ExecutionStatus


def _result(session_id: str = "s-art", duration_ms: int = 3000, **kwargs) -> ExecutionResult:
    now = datetime.now(timezone.utc)
    return ExecutionResult(
        session_id=session_id,
        execution_id="exec-1",
        test_id="t-1",
        exit_code=kwargs.pop("exit_code", 0),
        status=kwargs.pop("status", ExecutionStatus.PASSED),
        started_at=now,
        ended_at=now,
        duration_ms=duration_ms,
        **kwargs,
    )


def _write(path: Path, content: bytes = b"x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.mark.parametrize(
    ("path", "kind"),
    [
        ("test-output/login/test-failed-1.png", ArtifactKind.SCREENSHOT),
        ("shot.JPEG", ArtifactKind.SCREENSHOT),
        ("test-output/login/video.webm", ArtifactKind.VIDEO),
        ("clip.mp4", ArtifactKind.VIDEO),
        ("test-output/login/trace.zip", ArtifactKind.TRACE),
        ("test-output/login/bundle.zip", None),
        ("html-report/data/abc.png", ArtifactKind.REPORT),
        ("results.json", None),
    ],
)
def test_classify(path, kind):
    assert classify(Path(path)) is kind


class TestCountOutcomes:
    def test_nested_suites(self):
        suites = [
            {
                "title": "root",
                "specs": [{"tests": [{"outcome": "expected"}]}],
                "suites": [
                    {
                        "title": "child",
                        "specs": [
                            {"tests": [{"outcome": "expected"}]},
                            {"tests": [{"outcome": "unexpected"}]},
                        ],
                    }
                ],
            }
        ]
        assert count_outcomes(suites) == {
            "test_count": 3,
            "passed_count": 2,
            "failed_count": 1,
            "skipped_count": 0,
        }

    def test_other_outcomes_count_as_skipped(self):
        suites = [{"specs": [{"tests": [{"outcome": "skipped"}, {"outcome": "flaky"}]}]}]
        counts = count_outcomes(suites)
        assert counts["skipped_count"] == 2
        assert counts["test_count"] == 2

    def test_malformed_nodes_are_skipped(self):
        suites = [
            None,
            {"specs": "x"},
            {"specs": [None, {"tests": [42, {"outcome": "expected"}]}], "suites": {"bad": True}},
        ]
        counts = count_outcomes(suites)
        assert counts["test_count"] == 1
        assert counts["passed_count"] == 1

    def test_deep_tree_does_not_recurse(self):
        leaf: dict = {"specs": [{"tests": [{"outcome": "expected"}]}]}
        root = leaf
        for _ in range(5000):
            root = {"suites": [root]}
        assert count_outcomes([root])["passed_count"] == 1


class TestSummarize:
    def test_average_over_tests(self):
        detailed = {"suites": [{"specs": [{"tests": [{"outcome": "expected"}, {"outcome": "expected"}]}]}]}
        summary = summarize(_result(duration_ms=3000, detailed_results=detailed))

        assert summary.test_count == 2
        assert summary.performance.execution_time_ms == 3000
        assert summary.performance.avg_test_time_ms == 1500

    def test_no_detailed_results(self):
        summary = summarize(_result())
        assert summary.test_count == 0
        assert summary.performance.avg_test_time_ms == 0


class TestCollector:
    async def test_collect_renames_into_buckets(self, settings):
        collector = ArtifactCollector(settings)
        root = collector.results_path("s-art")
        _write(root / "test-output" / "a" / "test-failed-1.png")
        _write(root / "test-output" / "a" / "video.webm")
        _write(root / "test-output" / "a" / "trace.zip")
        _write(root / "html-report" / "index.html", b"<html></html>")
        _write(root / "html-report" / "data" / "copy.png")

        manifest = await collector.collect(root, "s-art")

        assert [a.filename for a in manifest.screenshots] == ["s-art-test-failed-1.png"]
        assert manifest.screenshots[0].url == "/screenshots/s-art-test-failed-1.png"
        assert (settings.screenshots_dir / "s-art-test-failed-1.png").is_file()
        assert manifest.videos[0].url == "/videos/s-art-video.webm"
        assert manifest.traces[0].url == "/traces/s-art-trace.zip"
        assert len(manifest.reports) == 1
        assert manifest.reports[0].url == "/results/s-art-html-report/index.html"
        assert (settings.results_dir / "s-art-html-report" / "index.html").is_file()

    async def test_same_basename_gets_suffix(self, settings):
        collector = ArtifactCollector(settings)
        root = collector.results_path("s-dup")
        _write(root / "test-output" / "a" / "test-failed-1.png")
        _write(root / "test-output" / "b" / "test-failed-1.png")

        manifest = await collector.collect(root, "s-dup")

        assert sorted(a.filename for a in manifest.screenshots) == [
            "s-dup-test-failed-1-1.png",
            "s-dup-test-failed-1.png",
        ]

    async def test_process_writes_result_document(self, settings):
        collector = ArtifactCollector(settings)
        root = collector.results_path("s-doc")
        report = {"suites": [{"specs": [{"tests": [{"outcome": "expected"}, {"outcome": "unexpected"}]}]}]}
        _write(root / "results.json", json.dumps(report).encode())
        _write(root / "test-output" / "shot.png")

        processed = await collector.process(_result("s-doc"))

        assert processed.processing_error is None
        assert processed.detailed_results == report
        assert processed.summary.passed_count == 1
        assert processed.summary.failed_count == 1
        assert processed.summary.artifact_counts["screenshots"] == 1
        document = json.loads(collector.result_document_path("s-doc").read_text())
        assert document["session_id"] == "s-doc"
        assert document["summary"]["test_count"] == 2

    async def test_unparseable_report_sets_processing_error(self, settings):
        collector = ArtifactCollector(settings)
        _write(collector.results_path("s-broken") / "results.json", b"{not json")

        processed = await collector.process(_result("s-broken"))

        assert processed.processing_error
        assert processed.status == ExecutionStatus.PASSED
        assert processed.summary is not None

    async def test_malformed_report_shape_still_returns_result(self, settings):
        collector = ArtifactCollector(settings)
        _write(collector.results_path("s-shape") / "results.json", b'{"suites": [null]}')

        processed = await collector.process(_result("s-shape"))

        assert processed.detailed_results == {"suites": [None]}
        assert processed.summary is not None
        assert processed.summary.test_count == 0
        assert collector.result_document_path("s-shape").is_file()

    async def test_missing_results_dir_is_empty(self, settings):
        processed = await ArtifactCollector(settings).process(_result("s-none"))

        assert processed.processing_error is None
        assert processed.detailed_results is None
        assert processed.artifacts.counts() == {"screenshots": 0, "videos": 0, "traces": 0, "reports": 0}
