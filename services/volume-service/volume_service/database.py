from urllib.parse import urlparse

import structlog
from backend_common.database import (
    create_async_engine_and_session,
    ensure_async_url,
    get_required_env_url,
    normalize_asyncpg_ssl,
)
from backend_common.dependencies import make_get_db_async
from sqlalchemy.pool import NullPool

from .models import Base  # noqa: F401

logger = structlog.get_logger(__name__)

DATABASE_URL = normalize_asyncpg_ssl(ensure_async_url(get_required_env_url("VOLUME_DATABASE_URL")))

parsed = urlparse(DATABASE_URL)
logger.info("database_url_configured", scheme=parsed.scheme, url=parsed._replace(netloc="***").geturl())

engine_args = {}
if parsed.scheme.startswith("sqlite"):
    # aiosqlite connections are bound to the loop that opened them
    engine_args["poolclass"] = NullPool
else:
    engine_args["pool_pre_ping"] = True

engine, AsyncSessionLocal = create_async_engine_and_session(
    DATABASE_URL,
    autoflush=False,
    expire_on_commit=False,
    **engine_args,
)

get_db = make_get_db_async(AsyncSessionLocal)
