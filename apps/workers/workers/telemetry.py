"""Metrics and tracing for the reconciliation worker."""

from __future__ import annotations

from typing import Mapping

from celery import Celery
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.celery import CeleryInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from apps.api.app.core.config import Settings, get_settings
from apps.api.app.telemetry import parse_otlp_headers

POLL_RUNS = Counter(
    "paybridge_poller_runs_total",
    "Pending-transaction poll runs by outcome",
    labelnames=("outcome",),
)
POLL_TRANSACTIONS = Counter(
    "paybridge_poller_transactions_total",
    "Stale pending transactions handled by the poller",
    labelnames=("result",),
)
POLL_DURATION = Histogram(
    "paybridge_poller_run_duration_seconds",
    "Wall time of a poll run",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
POLL_BACKLOG = Gauge(
    "paybridge_poller_last_scanned",
    "Stale pending transactions found by the most recent poll run",
)

_instrumented = False


def record_poll(summary: Mapping[str, int | bool], duration: float) -> None:
    """Export one ``run_poll`` summary."""

    if summary.get("skipped"):
        POLL_RUNS.labels(outcome="skipped").inc()
        return
    scanned = int(summary.get("scanned", 0))
    changed = int(summary.get("changed", 0))
    failed = int(summary.get("failed", 0))
    POLL_RUNS.labels(outcome="failed" if failed else "completed").inc()
    POLL_BACKLOG.set(scanned)
    POLL_DURATION.observe(max(0.0, duration))
    POLL_TRANSACTIONS.labels(result="changed").inc(changed)
    POLL_TRANSACTIONS.labels(result="unchanged").inc(max(0, scanned - changed - failed))
    POLL_TRANSACTIONS.labels(result="failed").inc(failed)
    POLL_TRANSACTIONS.labels(result="notified").inc(int(summary.get("notified", 0)))


def configure_worker_telemetry(app: Celery, settings: Settings | None = None) -> None:
    """Expose the worker's metrics endpoint and trace Celery tasks when enabled."""

    global _instrumented
    if _instrumented:
        return
    settings = settings or get_settings()

    if settings.worker_prometheus_port is not None:
        start_http_server(
            port=settings.worker_prometheus_port,
            addr=settings.worker_prometheus_host,
        )

    if settings.otel_exporter_otlp_endpoint:
        provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": settings.otel_service_name or "paybridge-poller",
                    "service.version": "0.1.0",
                }
            )
        )
        provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=settings.otel_exporter_otlp_endpoint,
                    headers=parse_otlp_headers(settings.otel_exporter_otlp_headers),
                )
            )
        )
        trace.set_tracer_provider(provider)
        CeleryInstrumentor().instrument(tracer_provider=provider)

    _instrumented = True
