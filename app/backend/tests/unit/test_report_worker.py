"""Unit tests for the queue consumer and bounded worker pool."""

from __future__ import annotations

import os
import sys
import threading
import time
from collections import Counter
from pathlib import Path
from uuid import UUID, uuid4

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_reports.db")

import pytest

from app.backend.src.core.errors import ReportNotFoundError, UpstreamError
from app.backend.src.core.job_queue import InMemoryJobQueue, QueueMessage
from app.backend.src.core.storage import InMemoryBlobStore
from app.backend.src.db import get_engine
from app.backend.src.models import ReportStatus
from app.backend.src.models.base import Base
from app.backend.src.schemas.report import ReportJobMessage
from app.backend.src.services.compendium import Monster
from app.backend.src.services.report_builder import BuildContext, ReportBuilder
from app.backend.src.services.report_store import ReportStore
from app.backend.src.services.report_worker import ReportWorker


class RecordingBuilder:
    """Stand-in builder that tracks how many builds overlap."""

    def __init__(self, delay: float = 0.05, failing: set[UUID] | None = None) -> None:
        self.delay = delay
        self.failing = failing or set()
        self.calls: Counter[UUID] = Counter()
        self.contexts: list[BuildContext] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def build(self, ctx: BuildContext, user_id: UUID, report_id: UUID) -> None:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls[report_id] += 1
            self.contexts.append(ctx)
        try:
            time.sleep(self.delay)
            if report_id in self.failing:
                raise UpstreamError("source unavailable")
        finally:
            with self._lock:
                self.active -= 1


class UndeletableQueue(InMemoryJobQueue):
    def __init__(self) -> None:
        super().__init__()
        self.delete_attempts = 0

    def delete(self, message: QueueMessage) -> None:
        with self._condition:
            self.delete_attempts += 1
        raise ConnectionError("sqs unavailable")


class FlakyReceiveQueue(InMemoryJobQueue):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def receive(self, max_messages: int, wait_seconds: int = 0) -> list[QueueMessage]:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("receive failed")
        return super().receive(max_messages, wait_seconds)


class BrokenQueue(InMemoryJobQueue):
    def receive(self, max_messages: int, wait_seconds: int = 0) -> list[QueueMessage]:
        time.sleep(0.01)
        raise ConnectionError("receive failed")


def _enqueue_jobs(job_queue: InMemoryJobQueue, count: int) -> list[UUID]:
    report_ids = [uuid4() for _ in range(count)]
    for report_id in report_ids:
        job_queue.send(ReportJobMessage(user_id=uuid4(), report_id=report_id).to_body())
    return report_ids


def _wait_for(condition, timeout: float = 10.0) -> None:  # type: ignore[no-untyped-def]
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.01)


def _start(worker: ReportWorker) -> tuple[threading.Thread, threading.Event]:
    stop_event = threading.Event()
    thread = threading.Thread(target=worker.run, args=(stop_event,), daemon=True)
    thread.start()
    return thread, stop_event


def _stop(thread: threading.Thread, stop_event: threading.Event) -> None:
    stop_event.set()
    thread.join(timeout=10)
    assert not thread.is_alive()


def test_pool_processes_every_job_once_within_concurrency_bound() -> None:
    job_queue = InMemoryJobQueue()
    report_ids = _enqueue_jobs(job_queue, 10)
    builder = RecordingBuilder(delay=0.1)
    worker = ReportWorker(job_queue, builder, max_concurrency=3, job_timeout=2, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: len(job_queue.deleted) == 10)
    _stop(thread, stop_event)

    assert set(builder.calls) == set(report_ids)
    assert all(count == 1 for count in builder.calls.values())
    assert 2 <= builder.max_active <= 3
    assert job_queue.pending() == 0


def test_each_build_gets_its_own_deadline() -> None:
    job_queue = InMemoryJobQueue()
    _enqueue_jobs(job_queue, 2)
    builder = RecordingBuilder(delay=0)
    worker = ReportWorker(job_queue, builder, max_concurrency=1, job_timeout=5, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: len(job_queue.deleted) == 2)
    _stop(thread, stop_event)

    assert len(builder.contexts) == 2
    for ctx in builder.contexts:
        remaining = ctx.remaining()
        assert remaining is not None and remaining <= 5
        assert not ctx.cancel_event.is_set()


def test_failed_build_leaves_message_for_redelivery() -> None:
    job_queue = InMemoryJobQueue()
    report_ids = _enqueue_jobs(job_queue, 3)
    builder = RecordingBuilder(delay=0, failing={report_ids[1]})
    worker = ReportWorker(job_queue, builder, max_concurrency=2, job_timeout=2, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: sum(builder.calls.values()) == 3 and len(job_queue.deleted) == 2)
    _stop(thread, stop_event)

    assert job_queue.pending() == 1
    assert job_queue.release() == 1


def test_malformed_messages_are_acknowledged_without_building() -> None:
    job_queue = InMemoryJobQueue()
    job_queue.send("not json")
    job_queue.send("")
    job_queue.send('{"user_id": "nope"}')
    builder = RecordingBuilder(delay=0)
    worker = ReportWorker(job_queue, builder, max_concurrency=2, job_timeout=2, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: len(job_queue.deleted) == 3)
    _stop(thread, stop_event)

    assert sum(builder.calls.values()) == 0


def test_delete_failure_is_logged_and_worker_keeps_going() -> None:
    job_queue = UndeletableQueue()
    _enqueue_jobs(job_queue, 4)
    builder = RecordingBuilder(delay=0)
    worker = ReportWorker(job_queue, builder, max_concurrency=2, job_timeout=2, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: job_queue.delete_attempts == 4)
    _stop(thread, stop_event)

    assert sum(builder.calls.values()) == 4


def test_receive_errors_are_retried() -> None:
    job_queue = FlakyReceiveQueue(failures=3)
    _enqueue_jobs(job_queue, 2)
    builder = RecordingBuilder(delay=0)
    worker = ReportWorker(job_queue, builder, max_concurrency=1, job_timeout=2, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: len(job_queue.deleted) == 2)
    _stop(thread, stop_event)

    assert job_queue.failures == 0


def test_stop_event_ends_receive_loop_even_while_polls_fail() -> None:
    worker = ReportWorker(BrokenQueue(), RecordingBuilder(), max_concurrency=2, job_timeout=1)

    thread, stop_event = _start(worker)
    time.sleep(0.1)
    _stop(thread, stop_event)


def test_process_message_propagates_build_errors() -> None:
    class MissingBuilder:
        def build(self, ctx: BuildContext, user_id: UUID, report_id: UUID) -> None:
            raise ReportNotFoundError(user_id, report_id)

    worker = ReportWorker(InMemoryJobQueue(), MissingBuilder(), max_concurrency=1)
    body = ReportJobMessage(user_id=uuid4(), report_id=uuid4()).to_body()

    with pytest.raises(ReportNotFoundError):
        worker.process_message(QueueMessage("m-1", "r-1", body))


def test_max_concurrency_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ReportWorker(InMemoryJobQueue(), RecordingBuilder(), max_concurrency=0)


@pytest.fixture()
def database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


class StaticSource:
    def __init__(self) -> None:
        self.calls = 0

    def fetch_rows(self, timeout: float | None = None) -> list[Monster]:
        self.calls += 1
        return [Monster(id=1, name="lynel"), Monster(id=2, name="molduga")]


def test_redelivery_after_failed_delete_does_not_rebuild(database: None) -> None:
    job_queue = UndeletableQueue()
    store = ReportStore()
    blob_store = InMemoryBlobStore()
    source = StaticSource()
    report = store.create(uuid4(), "monsters")
    job_queue.send(ReportJobMessage(user_id=report.user_id, report_id=report.id).to_body())
    builder = ReportBuilder(store, source, blob_store)
    worker = ReportWorker(job_queue, builder, max_concurrency=2, job_timeout=5, wait_seconds=1)

    thread, stop_event = _start(worker)
    _wait_for(lambda: job_queue.delete_attempts == 1)
    # The undeleted message becomes visible again, as after a visibility timeout.
    assert job_queue.release() == 1
    _wait_for(lambda: job_queue.delete_attempts == 2)
    _stop(thread, stop_event)

    assert source.calls == 1
    assert blob_store.put_calls == 1
    stored = store.get_by_key(report.user_id, report.id)
    assert stored.status == ReportStatus.COMPLETED
    assert stored.output_file_path == f"users/{report.user_id}/{report.id}.csv.gz"
