"""Database models."""

from saint.models.records import ResultRecord, TestRecord

__all__ = ["TestRecord", "ResultRecord"]
