"""Reporting module."""

from saint.reports.analytics import DashboardAnalytics, categorize_failure

__all__ = ["DashboardAnalytics", "categorize_failure"]
