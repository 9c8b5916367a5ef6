from celery import Celery

from apps.api.app.core.config import get_settings
from apps.api.app.core.logging import configure_logging

from .telemetry import configure_worker_telemetry

settings = get_settings()
BROKER_URL = settings.celery_broker_url or settings.redis_url or "redis://redis:6379/0"

celery_app = Celery(
    "workers",
    broker=BROKER_URL,
    backend=settings.celery_result_backend or BROKER_URL,
    include=[f"{__package__}.tasks.reconcile"],
)
celery_app.conf.beat_schedule = {
    "reconcile-stale-pending-transactions": {
        "task": "reconcile.poll_pending",
        "schedule": float(settings.reconcile_poll_interval_seconds),
    }
}
celery_app.conf.task_acks_late = True
configure_logging()
configure_worker_telemetry(celery_app, settings)
