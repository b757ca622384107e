from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

import structlog
from backend_common.celery_utils import send_event
from celery import Celery

from ..config import get_settings
from ..metrics import VOLUME_EVENTS_FAILED_TOTAL, VOLUME_EVENTS_PUBLISHED_TOTAL

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VolumeThresholdReached:
    user_id: str
    week_start: str
    total_volume: float
    threshold: float

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


class EventPublisher(Protocol):
    def publish(self, event: VolumeThresholdReached) -> None: ...


class NullEventPublisher:
    def publish(self, event: VolumeThresholdReached) -> None:
        logger.debug("event_publishing_disabled", user_id=event.user_id, week_start=event.week_start)


class CeleryEventPublisher:
    def __init__(self, celery_app: Celery, queue: str, task_name: str):
        self.celery_app = celery_app
        self.queue = queue
        self.task_name = task_name

    def publish(self, event: VolumeThresholdReached) -> None:
        task_id = send_event(
            self.celery_app,
            task_name=self.task_name,
            queue=self.queue,
            payload=event.to_payload(),
            logger=logger,
            log_extra={"user_id": event.user_id, "week_start": event.week_start},
        )
        if task_id is None:
            VOLUME_EVENTS_FAILED_TOTAL.inc()
        else:
            VOLUME_EVENTS_PUBLISHED_TOTAL.inc()


def build_event_publisher() -> EventPublisher:
    settings = get_settings()
    if not settings.EVENTS_ENABLED:
        return NullEventPublisher()

    from ..celery_app import celery_app

    return CeleryEventPublisher(celery_app, settings.CELERY_EVENTS_QUEUE, settings.VOLUME_THRESHOLD_TASK_NAME)
