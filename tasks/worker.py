"""Report worker process entrypoint.

Run with ``python -m tasks.worker``. The process polls the report SQS queue
and builds reports until it receives SIGINT or SIGTERM, after which in-flight
builds get their job timeout to finish before the process exits.
"""

from __future__ import annotations

import signal
import threading
from pathlib import Path
from types import FrameType

import httpx
import structlog
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(PROJECT_ROOT / ".env")

from app.backend.src.core.config import Settings, get_settings  # noqa: E402
from app.backend.src.core.logging import configure_logging  # noqa: E402
from app.backend.src.core.storage import S3BlobStore  # noqa: E402
from app.backend.src.services.compendium import CompendiumClient  # noqa: E402
from app.backend.src.services.report_builder import ReportBuilder  # noqa: E402
from app.backend.src.services.report_store import ReportStore  # noqa: E402
from app.backend.src.services.report_worker import ReportWorker  # noqa: E402
from app.backend.src.services.sqs import get_job_queue  # noqa: E402

LOGGER = structlog.get_logger(__name__)


def build_worker(settings: Settings) -> tuple[ReportWorker, CompendiumClient]:
    """Wire the shared clients into a worker; every handle here is thread-safe."""

    source = CompendiumClient(
        settings.compendium_base_url,
        timeout=settings.compendium_timeout_seconds,
        client=httpx.Client(timeout=settings.compendium_timeout_seconds),
    )
    builder = ReportBuilder(
        ReportStore(),
        source,
        S3BlobStore(),
        retry_failed=settings.report_retry_failed,
    )
    worker = ReportWorker(
        get_job_queue(settings),
        builder,
        max_concurrency=settings.report_worker_concurrency,
        job_timeout=settings.report_job_timeout_seconds,
        wait_seconds=settings.reports_sqs_wait_seconds,
    )
    return worker, source


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum: int, _frame: FrameType | None) -> None:
        LOGGER.info("report_worker_signal", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main() -> None:
    configure_logging()
    settings = get_settings()
    LOGGER.info(
        "report_worker_configuration",
        queue=settings.reports_sqs_queue,
        bucket=settings.aws_s3_bucket,
        concurrency=settings.report_worker_concurrency,
        job_timeout=settings.report_job_timeout_seconds,
        retry_failed=settings.report_retry_failed,
    )

    worker, source = build_worker(settings)
    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    try:
        worker.run(stop_event)
    finally:
        source.close()


if __name__ == "__main__":
    main()
