"""Endpoints to request reports and poll their status."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.core.errors import ReportNotFoundError
from app.backend.src.core.job_queue import JobQueue
from app.backend.src.core.storage import BlobStore, S3BlobStore
from app.backend.src.models import Report
from app.backend.src.schemas.report import ReportCreate, ReportRead
from app.backend.src.services import reports as report_service
from app.backend.src.services.report_store import ReportStore
from app.backend.src.services.sqs import get_job_queue

router = APIRouter(prefix="/reports", tags=["reports"])


def get_current_user_id(x_user_id: Annotated[UUID, Header()]) -> UUID:
    """Return the caller's id as asserted by the authenticating gateway."""

    return x_user_id


def get_report_store() -> ReportStore:
    return ReportStore()


@lru_cache()
def _shared_job_queue() -> JobQueue:
    return get_job_queue()


def get_report_queue() -> JobQueue:
    return _shared_job_queue()


def get_blob_store() -> BlobStore:
    return S3BlobStore()


@router.post("", response_model=ReportRead, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreate,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    store: Annotated[ReportStore, Depends(get_report_store)],
    job_queue: Annotated[JobQueue, Depends(get_report_queue)],
) -> Report:
    """Create a report and schedule its generation."""

    return report_service.request_report(store, job_queue, user_id, payload.report_type)


@router.get("/{report_id}", response_model=ReportRead)
def read_report(
    report_id: UUID,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    store: Annotated[ReportStore, Depends(get_report_store)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Report:
    """Return a report owned by the caller, with a fresh download URL once completed."""

    try:
        return report_service.get_report(
            store,
            blob_store,
            user_id,
            report_id,
            ttl_seconds=settings.report_download_url_ttl_seconds,
        )
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Report not found") from exc
