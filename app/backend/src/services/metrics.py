"""Prometheus metric definitions for report generation."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

report_jobs_total = Counter(
    "report_jobs_total",
    "Total report builds by outcome.",
    labelnames=["status"],
)

report_build_seconds = Histogram(
    "report_build_seconds",
    "Duration of report builds in seconds.",
)

report_queue_messages_total = Counter(
    "report_queue_messages_total",
    "Queue messages handled by the report worker, by outcome.",
    labelnames=["outcome"],
)

report_builds_in_flight = Gauge(
    "report_builds_in_flight",
    "Report builds currently executing in this worker process.",
)

__all__ = [
    "report_build_seconds",
    "report_builds_in_flight",
    "report_jobs_total",
    "report_queue_messages_total",
]
