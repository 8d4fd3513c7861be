"""Report model tracking the lifecycle of an asynchronous export."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops the offset on round-trip)."""

    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ReportStatus:
    """Observable states derived from the lifecycle timestamps."""

    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Report(Base):
    """A user's request for a generated export and its outcome.

    ``status`` is computed from the timestamps on read and never stored:
    ``started_at`` unset means *requested*, set without a terminal timestamp
    means *processing*, and ``completed_at`` / ``failed_at`` are terminal.
    """

    __tablename__ = "reports"
    __table_args__ = (Index("ix_reports_user_id_id", "user_id", "id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    report_type: Mapped[str] = mapped_column(String(64), nullable=False)
    output_file_path: Mapped[str | None] = mapped_column(String(1024))
    download_url: Mapped[str | None] = mapped_column(Text)
    download_url_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def status(self) -> str:
        if self.started_at is None:
            return ReportStatus.REQUESTED
        if self.completed_at is not None:
            return ReportStatus.COMPLETED
        if self.failed_at is not None:
            return ReportStatus.FAILED
        return ReportStatus.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self.status in {ReportStatus.COMPLETED, ReportStatus.FAILED}

    def mark_started(self, now: datetime) -> None:
        """Enter *processing*, discarding any outcome of a previous attempt."""

        self.started_at = now
        self.completed_at = None
        self.failed_at = None
        self.error_message = None
        self.output_file_path = None
        self.download_url = None
        self.download_url_expires_at = None

    def mark_completed(self, output_file_path: str, now: datetime) -> None:
        self.output_file_path = output_file_path
        self.completed_at = now
        self.failed_at = None
        self.error_message = None

    def mark_failed(self, error_message: str, now: datetime) -> None:
        """Enter *failed*; a failed report never points at an artifact."""

        self.failed_at = now
        self.completed_at = None
        self.output_file_path = None
        self.download_url = None
        self.download_url_expires_at = None
        self.error_message = error_message or "report generation failed"

    def download_url_is_fresh(self, now: datetime) -> bool:
        """Return ``True`` while the cached download URL can still be handed out."""

        expires_at = as_utc(self.download_url_expires_at)
        if self.download_url is None or expires_at is None:
            return False
        return expires_at > now

    def __repr__(self) -> str:
        return f"Report(id={self.id}, user_id={self.user_id}, status={self.status})"


__all__ = ["Report", "ReportStatus", "as_utc", "utcnow"]
