"""Dashboard analytics over saved tests and execution results."""

from __future__ import annotations

import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

FAST_THRESHOLD_MS = 30_000
SLOW_THRESHOLD_MS = 120_000
TREND_WINDOW_DAYS = 30
RECENT_LIMIT = 10
RECENT_FAILURES_LIMIT = 5
ERROR_SUMMARY_LENGTH = 200

_FAILURE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"timeout|timed\s+out|exceeded\s+\d+\s*ms", re.IGNORECASE), "timeout"),
    (re.compile(r"element\s+not\s+found|waiting\s+for\s+locator|no\s+element", re.IGNORECASE), "element_not_found"),
    (re.compile(r"network|ECONNREFUSED|ECONNRESET|net::ERR_", re.IGNORECASE), "network_error"),
    (re.compile(r"assertion|expect\(|AssertionError", re.IGNORECASE), "assertion_failed"),
]


def categorize_failure(output: str | None) -> str:
    """Return the failure reason for a failed run's error output."""
    text = output or ""
    for pattern, reason in _FAILURE_PATTERNS:
        if pattern.search(text):
            return reason
    return "unknown"


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _sort_key(value: Any) -> datetime:
    return _parse_time(value) or datetime.min.replace(tzinfo=timezone.utc)


def _duration(result: dict[str, Any]) -> int:
    return int(result.get("duration_ms") or 0)


def _run_config(test: dict[str, Any]) -> dict[str, Any]:
    cfg = test.get("run_config")
    return cfg if isinstance(cfg, dict) else {}


class DashboardAnalytics:
    """Aggregates test and result documents into the dashboard payload."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    def build(self, tests: list[dict[str, Any]], results: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "overview": {
                "total_tests": len(tests),
                "total_executions": len(results),
                "success_rate": self.success_rate(results),
                "avg_execution_time": self.avg_execution_time(results),
            },
            "test_types": self.test_types(tests),
            "execution_trends": self.execution_trends(results),
            "browser_distribution": self.browser_distribution(tests),
            "tag_analysis": self.tag_analysis(tests),
            "recent_activity": self.recent_activity(tests, results),
            "performance": self.performance(results),
            "failure_analysis": self.failure_analysis(results),
        }

    # ── Overview ──────────────────────────────────────────────────────────

    @staticmethod
    def success_rate(results: list[dict[str, Any]]) -> int:
        if not results:
            return 0
        passed = sum(1 for r in results if r.get("status") == "passed")
        return round(passed / len(results) * 100)

    @staticmethod
    def avg_execution_time(results: list[dict[str, Any]]) -> int:
        if not results:
            return 0
        return round(sum(_duration(r) for r in results) / len(results))

    # ── Tests ─────────────────────────────────────────────────────────────

    @staticmethod
    def test_types(tests: list[dict[str, Any]]) -> dict[str, int]:
        return dict(Counter(t.get("test_type") or "unknown" for t in tests))

    @staticmethod
    def browser_distribution(tests: list[dict[str, Any]]) -> dict[str, int]:
        return dict(Counter(_run_config(t).get("browser") or "chromium" for t in tests))

    @staticmethod
    def tag_analysis(tests: list[dict[str, Any]]) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for test in tests:
            counts.update(str(tag) for tag in _run_config(test).get("tags") or [])
        return dict(counts)

    # ── Results ───────────────────────────────────────────────────────────

    def execution_trends(self, results: list[dict[str, Any]]) -> dict[str, dict[str, int]]:
        """Per-day pass/fail totals over the trailing window."""
        cutoff = self.now - timedelta(days=TREND_WINDOW_DAYS)
        trends: dict[str, dict[str, int]] = {}
        for result in results:
            started = _parse_time(result.get("started_at"))
            if started is None or started < cutoff:
                continue
            day = trends.setdefault(started.date().isoformat(), {"total": 0, "passed": 0, "failed": 0})
            day["total"] += 1
            if result.get("status") == "passed":
                day["passed"] += 1
            else:
                day["failed"] += 1
        return dict(sorted(trends.items()))

    @staticmethod
    def recent_activity(
        tests: list[dict[str, Any]], results: list[dict[str, Any]]
    ) -> dict[str, list[dict[str, Any]]]:
        recent_tests = sorted(tests, key=lambda t: _sort_key(t.get("created")), reverse=True)
        recent_results = sorted(results, key=lambda r: _sort_key(r.get("started_at")), reverse=True)
        return {
            "recent_tests": [
                {
                    "id": t.get("id"),
                    "prompt": t.get("prompt"),
                    "test_type": t.get("test_type"),
                    "created": t.get("created"),
                }
                for t in recent_tests[:RECENT_LIMIT]
            ],
            "recent_executions": [
                {
                    "session_id": r.get("session_id"),
                    "status": r.get("status"),
                    "duration_ms": _duration(r),
                    "started_at": r.get("started_at"),
                }
                for r in recent_results[:RECENT_LIMIT]
            ],
        }

    def performance(self, results: list[dict[str, Any]]) -> dict[str, Any]:
        durations = [_duration(r) for r in results]
        return {
            "avg_duration": self.avg_execution_time(results),
            "fastest_execution": min(durations) if durations else None,
            "slowest_execution": max(durations) if durations else None,
            "executions_by_duration": {
                "fast": sum(1 for d in durations if d < FAST_THRESHOLD_MS),
                "medium": sum(1 for d in durations if FAST_THRESHOLD_MS <= d < SLOW_THRESHOLD_MS),
                "slow": sum(1 for d in durations if d >= SLOW_THRESHOLD_MS),
            },
        }

    @staticmethod
    def failure_analysis(results: list[dict[str, Any]]) -> dict[str, Any]:
        failures = [r for r in results if r.get("status") == "failed"]
        reasons = Counter(categorize_failure(f.get("stderr")) for f in failures)
        recent = sorted(failures, key=lambda r: _sort_key(r.get("started_at")), reverse=True)
        return {
            "total_failures": len(failures),
            "failure_rate": round(len(failures) / len(results) * 100) if results else 0,
            "failure_reasons": dict(reasons),
            "recent_failures": [
                {
                    "session_id": f.get("session_id"),
                    "started_at": f.get("started_at"),
                    "duration_ms": _duration(f),
                    "error_summary": (f.get("stderr") or "")[:ERROR_SUMMARY_LENGTH],
                }
                for f in recent[:RECENT_FAILURES_LIMIT]
            ],
        }
