"""ORM models exposed for easy imports."""

from .report import Report, ReportStatus

__all__ = [
    "Report",
    "ReportStatus",
]
