"""Celery application for inbound document processing and context expiry."""

from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging

from faxlink.config import get_settings
from faxlink.infra.logging_config import configure_logging

settings = get_settings()

celery_app = Celery(
    "faxlink",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["faxlink.tasks.correlation_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.is_test,
    beat_schedule={
        "sweep-expired-contexts": {
            "task": "faxlink.tasks.correlation_tasks.sweep_expired_contexts_task",
            "schedule": float(settings.context_sweep_interval_seconds),
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging(settings.log_level)
