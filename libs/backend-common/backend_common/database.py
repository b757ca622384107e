import os
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def get_required_env_url(env_name: str) -> str:
    url = os.getenv(env_name)
    if not url:
        raise RuntimeError(f"{env_name} environment variable is required")
    return url


def ensure_async_url(url: str) -> str:
    """Point a plain database URL at the async driver the services run on."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def ensure_sync_url(url: str) -> str:
    """Inverse of ``ensure_async_url`` for tools that need a blocking driver (alembic)."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return url


def normalize_asyncpg_ssl(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgresql+asyncpg"):
        return url

    q = dict(parse_qsl(parsed.query, keep_blank_values=True))
    sslmode = (q.pop("sslmode", None) or "").strip().lower()
    if sslmode in {"require", "verify-full", "verify-ca"}:
        q.setdefault("ssl", "true")
    elif sslmode == "disable":
        q.setdefault("ssl", "false")

    ssl_val = q.get("ssl")
    if isinstance(ssl_val, str) and ssl_val.lower() not in {"true", "false"}:
        q["ssl"] = "true"

    q.pop("channel_binding", None)
    return urlunparse(parsed._replace(query=urlencode(q, doseq=True)))


def create_async_engine_and_session(
    database_url: str,
    *,
    echo: bool = False,
    expire_on_commit: bool = True,
    autoflush: bool = True,
    **engine_kwargs: Any,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
    session_factory = async_sessionmaker(
        bind=engine,
        expire_on_commit=expire_on_commit,
        autoflush=autoflush,
        class_=AsyncSession,
    )
    return engine, session_factory
