"""Report API and queue message schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.backend.src.core.errors import MessageMalformedError


class ReportJobMessage(BaseModel):
    """Queue payload pointing at a report record; never a copy of its data."""

    user_id: UUID
    report_id: UUID

    def to_body(self) -> str:
        return self.model_dump_json()


def parse_job_message(body: str | None) -> ReportJobMessage:
    """Parse a raw queue body, raising :class:`MessageMalformedError` if unusable."""

    if body is None or not body.strip():
        raise MessageMalformedError("message body is empty")
    try:
        return ReportJobMessage.model_validate_json(body)
    except ValidationError as exc:
        raise MessageMalformedError(f"message body is invalid: {exc.error_count()} error(s)") from exc


class ReportCreate(BaseModel):
    """Payload for requesting a new report."""

    report_type: str = Field(min_length=1, max_length=64)


class ReportRead(BaseModel):
    """Schema for report records exposed via the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    report_type: str
    status: str
    output_file_path: str | None = None
    download_url: str | None = None
    download_url_expires_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None


__all__ = ["ReportCreate", "ReportJobMessage", "ReportRead", "parse_job_message"]
