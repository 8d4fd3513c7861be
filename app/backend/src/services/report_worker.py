"""Queue consumer feeding a bounded pool of report builder threads."""

from __future__ import annotations

import queue
import threading

import structlog

from app.backend.src.core.errors import MessageMalformedError
from app.backend.src.core.job_queue import JobQueue, QueueMessage
from app.backend.src.schemas.report import parse_job_message
from app.backend.src.services.metrics import (
    report_builds_in_flight,
    report_queue_messages_total,
)
from app.backend.src.services.report_builder import BuildContext, ReportBuilder

LOGGER = structlog.get_logger(__name__)

# How often blocked threads wake up to look at the stop event.
_STOP_POLL_SECONDS = 0.2


class ReportWorker:
    """Turn a pull-based queue into at most ``max_concurrency`` concurrent builds.

    One receive loop (the thread calling :meth:`run`) polls the queue and
    pushes messages onto a channel sized ``max_concurrency``; pushing blocks
    while every worker is busy, which bounds in-flight work. Each worker
    thread builds one report at a time and deletes the message only after the
    build succeeds. Failed builds are left on the queue, whose visibility
    timeout and dead-letter policy decide on redelivery.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        builder: ReportBuilder,
        *,
        max_concurrency: int = 2,
        job_timeout: float = 10.0,
        wait_seconds: int = 0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._queue = job_queue
        self._builder = builder
        self.max_concurrency = max_concurrency
        self.job_timeout = job_timeout
        self.wait_seconds = wait_seconds
        self._channel: queue.Queue[QueueMessage] = queue.Queue(maxsize=max_concurrency)

    def run(self, stop_event: threading.Event) -> None:
        """Consume until ``stop_event`` is set, then drain workers and return."""

        LOGGER.info(
            "report_worker_starting",
            concurrency=self.max_concurrency,
            job_timeout=self.job_timeout,
        )
        threads = [
            threading.Thread(
                target=self._work,
                args=(worker_id, stop_event),
                name=f"report-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self.max_concurrency)
        ]
        for thread in threads:
            thread.start()

        try:
            self._receive_loop(stop_event)
        finally:
            stop_event.set()
            for thread in threads:
                # In-flight builds get their own job timeout as a grace period.
                thread.join(timeout=self.job_timeout + _STOP_POLL_SECONDS * 5)
            LOGGER.info(
                "report_worker_stopped",
                abandoned=self._channel.qsize(),
                alive_threads=sum(thread.is_alive() for thread in threads),
            )

    def _receive_loop(self, stop_event: threading.Event) -> None:
        batch_size = self.max_concurrency + 1
        while not stop_event.is_set():
            try:
                messages = self._queue.receive(batch_size, self.wait_seconds)
            except Exception as exc:
                LOGGER.error("report_queue_receive_failed", error=str(exc))
                if stop_event.is_set():
                    return
                continue

            for message in messages:
                if not self._dispatch(message, stop_event):
                    # Undispatched messages become visible again after their
                    # visibility timeout.
                    return

    def _dispatch(self, message: QueueMessage, stop_event: threading.Event) -> bool:
        while not stop_event.is_set():
            try:
                self._channel.put(message, timeout=_STOP_POLL_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def _work(self, worker_id: int, stop_event: threading.Event) -> None:
        log = LOGGER.bind(worker_id=worker_id)
        log.info("report_worker_thread_started")
        while True:
            if stop_event.is_set():
                log.info("report_worker_thread_stopped")
                return
            try:
                message = self._channel.get(timeout=_STOP_POLL_SECONDS)
            except queue.Empty:
                continue

            try:
                acknowledge = self.process_message(message)
            except Exception as exc:
                log.error(
                    "report_message_failed",
                    message_id=message.message_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                report_queue_messages_total.labels(outcome="failed").inc()
                continue
            finally:
                self._channel.task_done()

            if acknowledge:
                self._acknowledge(message, log)

    def process_message(self, message: QueueMessage) -> bool:
        """Build the report referenced by ``message``.

        Returns ``True`` when the message should be deleted. Malformed bodies
        are acknowledged without side effects; build errors propagate.
        """

        log = LOGGER.bind(message_id=message.message_id)
        try:
            job = parse_job_message(message.body)
        except MessageMalformedError as exc:
            log.warning("report_message_malformed", error=str(exc), body=message.body)
            report_queue_messages_total.labels(outcome="malformed").inc()
            return True

        log.info("report_message_processing", user_id=str(job.user_id), report_id=str(job.report_id))
        ctx = BuildContext.with_timeout(self.job_timeout)
        report_builds_in_flight.inc()
        try:
            self._builder.build(ctx, job.user_id, job.report_id)
        finally:
            report_builds_in_flight.dec()
        report_queue_messages_total.labels(outcome="succeeded").inc()
        return True

    def _acknowledge(self, message: QueueMessage, log) -> None:
        try:
            self._queue.delete(message)
        except Exception as exc:
            # The builder's idempotency guard absorbs the resulting redelivery.
            log.error("report_message_delete_failed", message_id=message.message_id, error=str(exc))


__all__ = ["ReportWorker"]
