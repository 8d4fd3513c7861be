"""Service functions behind the report endpoints."""

from __future__ import annotations

from uuid import UUID

import structlog

from app.backend.src.core.errors import UpstreamError
from app.backend.src.core.job_queue import JobQueue
from app.backend.src.core.storage import BlobStore
from app.backend.src.models import Report
from app.backend.src.models.report import utcnow
from app.backend.src.schemas.report import ReportJobMessage
from app.backend.src.services.report_store import ReportStore

LOGGER = structlog.get_logger(__name__)


def request_report(
    store: ReportStore, job_queue: JobQueue, user_id: UUID, report_type: str
) -> Report:
    """Persist a new report in the *requested* state and enqueue its job."""

    report = store.create(user_id, report_type)
    message = ReportJobMessage(user_id=report.user_id, report_id=report.id)
    try:
        message_id = job_queue.send(message.to_body())
    except Exception as exc:
        LOGGER.error("report_enqueue_failed", report_id=str(report.id), error=str(exc))
        _abandon(store, report)
        raise UpstreamError("failed to enqueue report job") from exc
    LOGGER.info(
        "report_requested",
        user_id=str(user_id),
        report_id=str(report.id),
        report_type=report_type,
        message_id=message_id,
    )
    return report


def _abandon(store: ReportStore, report: Report) -> None:
    """Fail a report whose job never reached the queue."""

    now = utcnow()
    report.mark_started(now)
    report.mark_failed("failed to enqueue report job", now)
    try:
        store.update(report)
    except Exception as exc:
        LOGGER.error("report_abandon_not_recorded", report_id=str(report.id), error=str(exc))


def get_report(
    store: ReportStore,
    blob_store: BlobStore,
    user_id: UUID,
    report_id: UUID,
    *,
    ttl_seconds: int,
) -> Report:
    """Return a report, refreshing its download URL when absent or expired.

    The URL is a cache: concurrent refreshes may both presign and persist,
    and whichever write lands last wins.
    """

    report = store.get_by_key(user_id, report_id)
    if report.completed_at is None or report.output_file_path is None:
        return report
    if report.download_url_is_fresh(utcnow()):
        return report

    url, expires_at = blob_store.presign_download(report.output_file_path, ttl_seconds)
    report.download_url = url
    report.download_url_expires_at = expires_at
    LOGGER.info("report_download_url_refreshed", report_id=str(report_id), expires_at=expires_at.isoformat())
    return store.update(report)


__all__ = ["get_report", "request_report"]
