"""Error types raised by the report generation pipeline."""

from __future__ import annotations

from uuid import UUID


class ReportError(Exception):
    """Base class for expected report pipeline failures."""


class ReportNotFoundError(ReportError):
    """The referenced report record does not exist for the given owner."""

    def __init__(self, user_id: UUID, report_id: UUID) -> None:
        super().__init__(f"report {report_id} not found for user {user_id}")
        self.user_id = user_id
        self.report_id = report_id


class EmptySourceError(ReportError):
    """The data source returned no rows, so no artifact can be produced."""


class UpstreamError(ReportError):
    """A collaborator (data source, blob store, database) failed during a build."""


class BuildCancelledError(UpstreamError):
    """The build ran past its deadline or the worker asked it to stop."""


class MessageMalformedError(ReportError):
    """A queue payload could not be parsed into a job message."""


__all__ = [
    "BuildCancelledError",
    "EmptySourceError",
    "MessageMalformedError",
    "ReportError",
    "ReportNotFoundError",
    "UpstreamError",
]
