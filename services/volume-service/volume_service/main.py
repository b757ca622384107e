import structlog
from backend_common.fastapi_app import create_service_app
from fastapi import status
from fastapi.responses import JSONResponse

from .exceptions import FatalReadFailure, InvalidSpanError
from .logging_config import configure_logging
from .routers.aggregation import router as aggregation_router
from .routers.dashboard import router as dashboard_router

configure_logging()
logger = structlog.get_logger(__name__)


async def fatal_read_failure_handler(request, exc: FatalReadFailure):
    logger.error("aggregation_aborted", user_id=exc.user_id, stage=exc.stage, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Failed to read {exc.stage}"},
    )


async def invalid_span_handler(request, exc: InvalidSpanError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


app = create_service_app(
    title="volume-service",
    version="0.1.0",
    exception_handlers={
        FatalReadFailure: fatal_read_failure_handler,
        InvalidSpanError: invalid_span_handler,
    },
)

app.include_router(dashboard_router)
app.include_router(aggregation_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8011)
