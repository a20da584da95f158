"""Record models for stored tests and execution results."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from saint.db.base import Base, TimestampMixin, UUIDMixin


class TestRecord(Base, UUIDMixin, TimestampMixin):
    """A saved test definition; ``payload`` holds the full document."""

    __tablename__ = "tests"

    test_type: Mapped[str | None] = mapped_column(String(20), index=True)
    browser: Mapped[str | None] = mapped_column(String(50))
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<TestRecord(id={self.id}, type={self.test_type})>"


class ResultRecord(Base, UUIDMixin, TimestampMixin):
    """A persisted ExecutionResult keyed by session id."""

    __tablename__ = "results"

    session_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<ResultRecord(session_id={self.session_id}, status={self.status})>"
