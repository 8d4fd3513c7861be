"""Persistence for report records."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.backend.src.core.errors import ReportNotFoundError
from app.backend.src.db import session_scope
from app.backend.src.models import Report
from app.backend.src.models.report import utcnow

# Columns the pipeline is allowed to rewrite; identity, type and creation time
# are fixed once the row exists.
MUTABLE_FIELDS: tuple[str, ...] = (
    "output_file_path",
    "download_url",
    "download_url_expires_at",
    "error_message",
    "started_at",
    "completed_at",
    "failed_at",
)


class ReportStore:
    """Create, update and look up reports, one transaction per call.

    Returned instances are detached from their session, so callers may hold
    them across calls and threads may share a single store.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]] = session_scope,
    ) -> None:
        self._session_factory = session_factory

    def create(self, user_id: UUID, report_type: str) -> Report:
        with self._session_factory() as session:
            report = Report(user_id=user_id, report_type=report_type, created_at=utcnow())
            session.add(report)
            session.flush()
            session.refresh(report)
            return report

    def update(self, report: Report) -> Report:
        """Replace the mutable fields of the stored row with ``report``'s values."""

        with self._session_factory() as session:
            stored = self._load(session, report.user_id, report.id)
            for field in MUTABLE_FIELDS:
                setattr(stored, field, getattr(report, field))
            stored.updated_at = utcnow()
            session.flush()
            session.refresh(stored)
            return stored

    def get_by_key(self, user_id: UUID, report_id: UUID) -> Report:
        with self._session_factory() as session:
            return self._load(session, user_id, report_id)

    @staticmethod
    def _load(session: Session, user_id: UUID, report_id: UUID) -> Report:
        report = session.scalars(
            select(Report).where(Report.user_id == user_id, Report.id == report_id)
        ).one_or_none()
        if report is None:
            raise ReportNotFoundError(user_id, report_id)
        return report


__all__ = ["MUTABLE_FIELDS", "ReportStore"]
