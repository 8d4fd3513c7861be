"""Health check and metrics endpoints."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..db import get_session_dependency

LOGGER = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health/live")
def liveness() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health/ready")
def readiness(
    session: Annotated[Session, Depends(get_session_dependency)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, str]:
    """Ready once the report table's database answers; 503 otherwise."""

    try:
        session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        LOGGER.error("readiness_database_unavailable", error=str(exc))
        raise HTTPException(status_code=503, detail="Database unavailable") from exc

    return {
        "status": "ready",
        "storage": "local" if settings.storage_is_local else "s3",
        "queue": settings.reports_sqs_queue,
    }


@router.get("/metrics")
def metrics() -> Response:
    """Expose report worker and API metrics in Prometheus text format."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
