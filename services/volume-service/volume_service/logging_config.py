from backend_common.logging import configure_logging as _configure_logging
from sentry_sdk.integrations.celery import CeleryIntegration


def configure_logging() -> None:
    _configure_logging("volume-service", extra_sentry_integrations=[CeleryIntegration()])
