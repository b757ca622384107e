from __future__ import annotations

from typing import Any

import structlog
from celery import Celery

logger = structlog.get_logger(__name__)


def send_event(
    celery_app: Celery,
    *,
    task_name: str,
    queue: str,
    payload: dict[str, Any],
    logger=logger,
    log_extra: dict[str, Any] | None = None,
) -> str | None:
    """Publish ``payload`` as a named task without waiting for a consumer.

    Broker errors are logged and reported as ``None``; the caller's work is
    already done by the time an event is sent.
    """
    log_payload: dict[str, Any] = {"task_name": task_name, "queue": queue}
    if log_extra:
        log_payload.update(log_extra)

    try:
        async_result = celery_app.send_task(task_name, kwargs={"payload": payload}, queue=queue)
    except Exception as exc:
        logger.warning("event_publish_failed", error=str(exc), **log_payload)
        return None

    logger.info("event_published", task_id=async_result.id, **log_payload)
    return async_result.id
