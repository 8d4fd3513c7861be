"""Execute a single report job: load, guard, fetch, transform, upload, finalize."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from time import perf_counter
from typing import Protocol
from uuid import UUID

import structlog

from app.backend.src.core.errors import (
    BuildCancelledError,
    EmptySourceError,
    ReportError,
    UpstreamError,
)
from app.backend.src.core.storage import BlobStore
from app.backend.src.models import Report
from app.backend.src.models.report import utcnow
from app.backend.src.services.compendium import Monster
from app.backend.src.services.metrics import report_build_seconds, report_jobs_total
from app.backend.src.services.report_export import (
    REPORT_CONTENT_TYPE,
    build_report_bytes,
    report_object_key,
)
from app.backend.src.services.report_store import ReportStore

LOGGER = structlog.get_logger(__name__)


class ArtifactSource(Protocol):
    def fetch_rows(self, timeout: float | None = None) -> list[Monster]:
        """Return the rows to export."""


@dataclass
class BuildContext:
    """Time budget and stop signal for one build.

    ``deadline`` is a :func:`time.monotonic` value; ``None`` means unbounded.
    """

    deadline: float | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(
        cls, seconds: float, cancel_event: threading.Event | None = None
    ) -> "BuildContext":
        return cls(
            deadline=time.monotonic() + seconds,
            cancel_event=cancel_event or threading.Event(),
        )

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def check(self) -> None:
        if self.cancel_event.is_set():
            raise BuildCancelledError("report build cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise BuildCancelledError("report build deadline exceeded")


class ReportBuilder:
    """Build report artifacts and drive the report record through its lifecycle.

    Safe to call more than once for the same job because queue delivery is
    at-least-once: a record that is already processing or completed is
    returned untouched. A record left *failed* by an earlier attempt is
    rebuilt when ``retry_failed`` is true and skipped otherwise.
    """

    def __init__(
        self,
        store: ReportStore,
        source: ArtifactSource,
        blob_store: BlobStore,
        *,
        retry_failed: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._source = source
        self._blob_store = blob_store
        self._retry_failed = retry_failed
        self._clock = clock

    def should_build(self, report: Report) -> bool:
        if report.started_at is None:
            return True
        return self._retry_failed and report.failed_at is not None

    def build(self, ctx: BuildContext, user_id: UUID, report_id: UUID) -> Report:
        log = LOGGER.bind(user_id=str(user_id), report_id=str(report_id))

        # ReportNotFoundError propagates untouched; there is no record to mark.
        report = self._store.get_by_key(user_id, report_id)

        if not self.should_build(report):
            log.info("report_build_skipped", status=report.status)
            report_jobs_total.labels(status="skipped").inc()
            return report

        start = perf_counter()
        try:
            report.mark_started(self._clock())
            report = self._store.update(report)
            log.info("report_build_started", report_type=report.report_type)

            ctx.check()
            rows = self._source.fetch_rows(timeout=ctx.remaining())
            if not rows:
                raise EmptySourceError("no rows returned by the data source")

            ctx.check()
            payload = build_report_bytes(rows)
            key = report_object_key(user_id, report_id)

            ctx.check()
            self._blob_store.put(
                key, payload, content_type=REPORT_CONTENT_TYPE, timeout=ctx.remaining()
            )

            ctx.check()
            report.mark_completed(key, self._clock())
            report = self._store.update(report)
        except Exception as exc:
            error = exc if isinstance(exc, ReportError) else UpstreamError(
                f"{type(exc).__name__}: {exc}"
            )
            self._record_failure(report, error, log)
            report_jobs_total.labels(status="failed").inc()
            if error is exc:
                raise
            raise error from exc
        finally:
            report_build_seconds.observe(perf_counter() - start)

        report_jobs_total.labels(status="completed").inc()
        log.info("report_build_completed", path=report.output_file_path, rows=len(rows))
        return report

    def _record_failure(
        self, report: Report, error: ReportError, log: structlog.stdlib.BoundLogger
    ) -> None:
        report.mark_failed(str(error), self._clock())
        log.error(
            "report_build_failed",
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            self._store.update(report)
        except Exception as exc:
            # Best effort only: the build error is what the caller needs to see.
            log.error("report_failure_not_recorded", error=str(exc))


__all__ = ["ArtifactSource", "BuildContext", "ReportBuilder"]
