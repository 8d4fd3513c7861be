"""FastAPI application serving report requests and status polling."""

from pathlib import Path

from dotenv import load_dotenv

# Deployed environments inject variables directly; .env is for local runs.
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import health, reports
from .core.errors import UpstreamError
from .core.logging import configure_logging

LOGGER = structlog.get_logger(__name__)


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    LOGGER.warning("upstream_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Report Exports", version="0.1.0")
    app.add_exception_handler(UpstreamError, upstream_error_handler)

    for router in (health.router, reports.router):
        app.include_router(router, prefix="/api")

    return app


app = create_app()
