from __future__ import annotations

from celery import Celery

from .config import get_settings

settings = get_settings()

# Producer only: volume-service publishes events, consumers live in other services.
celery_app = Celery("volume_service", broker=settings.CELERY_BROKER_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_default_queue=settings.CELERY_EVENTS_QUEUE,
    broker_connection_retry_on_startup=False,
    broker_connection_max_retries=1,
)
