import uuid
from collections.abc import Callable, Mapping
from typing import Any

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator


def instrument_with_metrics(app: FastAPI, *, endpoint: str = "/metrics") -> None:
    Instrumentator(excluded_handlers=[endpoint, "/health"]).instrument(app).expose(
        app,
        endpoint=endpoint,
        include_in_schema=False,
    )


def add_correlation_id_middleware(app: FastAPI, *, header_name: str = "X-Request-ID") -> None:
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=header_name,
        generator=lambda: str(uuid.uuid4()),
        update_request_header=True,
    )


def add_health_route(app: FastAPI, *, path: str = "/health") -> None:
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.add_api_route(path, health, methods=["GET"], include_in_schema=False)


def create_service_app(
    *,
    title: str,
    version: str = "0.1.0",
    description: str | None = None,
    enable_metrics: bool = True,
    metrics_endpoint: str = "/metrics",
    enable_correlation_id: bool = True,
    correlation_header_name: str = "X-Request-ID",
    health_path: str | None = "/health",
    exception_handlers: Mapping[type[Exception], Callable[..., Any]] | None = None,
    **fastapi_kwargs: Any,
) -> FastAPI:
    """FastAPI app with the platform defaults: Prometheus, correlation ids and a health probe.

    CORS is left to the gateway in front of the services.
    """
    app = FastAPI(title=title, version=version, description=description, **fastapi_kwargs)

    for exc_class, handler in (exception_handlers or {}).items():
        app.add_exception_handler(exc_class, handler)

    if health_path:
        add_health_route(app, path=health_path)

    if enable_metrics:
        instrument_with_metrics(app, endpoint=metrics_endpoint)

    if enable_correlation_id:
        add_correlation_id_middleware(app, header_name=correlation_header_name)

    return app
