"""FastAPI application for the settlement gateway.

Note: Rate limiting is not implemented at the application level; it belongs
to the reverse proxy in front of the service.
"""

from datetime import UTC, datetime

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from settler import __version__
from settler.api.endpoints import router
from settler.config import GatewayConfig
from settler.errors import ErrorCategory, SettlementError
from settler.logging_config import configure_logging

logger = structlog.get_logger()

SERVICE_NAME = "buyback-settler"

# Maximum request body size (1 MB); swap transactions are under 2 KB
MAX_REQUEST_SIZE = 1024 * 1024

app = FastAPI(
    title="Buyback Settler",
    description="Composes buyback settlement transactions for merchant payments",
    version=__version__,
)


@app.middleware("http")
async def limit_request_size(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with body larger than MAX_REQUEST_SIZE."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(status_code=413, content={"detail": "Request too large"})
    return await call_next(request)


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    """Render typed errors as ``{"error": code, "detail": message}``."""
    log = logger.error if exc.category is ErrorCategory.INTEGRITY else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        category=exc.category.value,
        retryable=exc.retryable,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "detail": "Internal server error"},
    )


app.include_router(router)


@app.get("/health")
async def health() -> dict[str, object]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def run() -> None:
    """Run the API server.

    Configuration via environment variables:
    - SETTLER_HOST: Host to bind to (default: 0.0.0.0)
    - SETTLER_PORT: Port to bind to (default: 8000)
    - SETTLER_DEBUG: Enable debug/reload mode (default: false)
    - LOG_LEVEL: structlog level (default: info)
    """
    config = GatewayConfig.from_env()
    configure_logging(config.log_level)
    logger.info("starting_server", host=config.host, port=config.port, cluster=config.cluster)
    uvicorn.run(
        "settler.api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
    )


if __name__ == "__main__":
    run()
