from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from spotsave import __version__
from spotsave.core.config import settings
from spotsave.core.exceptions import SpotSaveError
from spotsave.core.logging import configure_logging
from spotsave.api.v1.api import api_router
from spotsave.middleware.monitoring import RequestLoggingMiddleware
from spotsave.services.aws_client import aws_client_manager
from spotsave.workers.credential_refresh_worker import credential_refresh_worker


configure_logging()
logger = structlog.get_logger(__name__)


# Initialize Sentry for error tracking
if settings.SENTRY_DSN and not settings.DEBUG:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting SpotSave API", version=__version__, mock_mode=settings.MOCK_MODE)
    credential_refresh_worker.start()

    yield

    # Shutdown
    logger.info("Shutting down SpotSave API")
    await credential_refresh_worker.stop()
    aws_client_manager.shutdown()


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=__version__,
    description="AWS cost visibility and savings recommendations through a read-only cross-account role",
    openapi_url=f"{settings.API_PREFIX}/openapi.json" if settings.DEBUG else None,
    docs_url=f"{settings.API_PREFIX}/docs" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(SpotSaveError)
async def spotsave_error_handler(request: Request, exc: SpotSaveError):
    if exc.status_code >= 500:
        logger.error("Request error", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
    else:
        logger.warning("Request rejected", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid value')}"
        for error in exc.errors()
    ]
    message = "Invalid request: " + "; ".join(problems)
    logger.warning("Request rejected", path=request.url.path, error=message, error_type="RequestValidationError")
    return JSONResponse(status_code=422, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    return {
        "message": "SpotSave API",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "status": "healthy"
    }


@app.get("/health")
async def health_check():
    """Liveness endpoint for load balancers"""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "mock_mode": settings.MOCK_MODE,
        "refresh_worker_running": credential_refresh_worker.running,
    }


def run():
    import uvicorn

    uvicorn.run(
        "spotsave.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
