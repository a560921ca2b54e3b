"""Main FastAPI application for the SMS Wallet Command Service."""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smswallet.api.health import router as health_router
from smswallet.api.webhook import router as webhook_router
from smswallet.core.config import get_settings
from smswallet.core.dependencies import close_clients
from smswallet.core.exceptions import BaseAPIException
from smswallet.core.logging import get_logger, setup_logging
from smswallet.core.middleware import CorrelationIDMiddleware
from smswallet.database import check_database, init_db

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="SMS Wallet Command Service",
    description="Stablecoin wallet operated entirely through SMS commands",
    version=settings.service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(CorrelationIDMiddleware)

# CORS middleware
if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Include API routers
app.include_router(webhook_router, tags=["webhook"])
app.include_router(health_router, prefix="/api/v1", tags=["health"])


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Return API exceptions as structured JSON."""
    logger.warning(
        "API exception",
        path=request.url.path,
        error_code=exc.error_code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting SMS Wallet Command Service", version=settings.service_version)
    app.state.start_time = time.time()

    init_db()
    db_healthy = check_database()
    if not db_healthy:
        logger.warning("Database health check failed on startup")

    logger.info("Service startup complete", database_healthy=db_healthy)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down SMS Wallet Command Service")
    await close_clients()


def main():
    """Run the service with uvicorn."""
    import uvicorn
    uvicorn.run(
        "smswallet.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
