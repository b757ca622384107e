from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Bound-parameter ceilings of the target engine drive these two; raise them on PostgreSQL if needed.
    REFERENCE_CHUNK_SIZE: int = 900
    UPSERT_BATCH_SIZE: int = 20

    CLAMP_MODIFIER_MULTIPLIER: bool = False
    MODIFIER_MULTIPLIER_MIN: float = 0.0
    MODIFIER_MULTIPLIER_MAX: float = 2.0

    DEFAULT_DASHBOARD_SPAN: str = "4w"
    MAX_SPAN_WEEKS: int = 104

    VOLUME_THRESHOLD_KG: float | None = None
    EVENTS_ENABLED: bool = False
    CELERY_BROKER_URL: str = "redis://redis:6379/5"
    CELERY_EVENTS_QUEUE: str = "volume.events"
    VOLUME_THRESHOLD_TASK_NAME: str = "volume.threshold_reached"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
