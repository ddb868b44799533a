from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
import uvicorn
import logging
import sys

from dosetrack.core.config import settings
from dosetrack.core.exceptions import DoseTrackError
from dosetrack.db.session import SessionLocal

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {settings.PROJECT_NAME} {settings.VERSION} ({settings.ENVIRONMENT.value})")
    if settings.REQUIRE_API_KEY and not settings.api_keys:
        logger.warning("REQUIRE_API_KEY is set but VALID_API_KEYS is empty; internal endpoints will reject every call")
    if not settings.smtp_configured:
        logger.warning("SMTP is not configured; email channel attempts will fail")
    yield
    logger.info(f"{settings.PROJECT_NAME} shutdown complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Medication dose tracking, stock projection and multi-channel reminders",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )

    from dosetrack.api.v1.api import api_router
    app.include_router(api_router, prefix=settings.API_V1_STR)

    if settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
        logger.info("Prometheus metrics exposed at /metrics")

    register_exception_handlers(app)

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint that redirects to API documentation"""
        return RedirectResponse(url=f"{settings.API_V1_STR}/docs")

    @app.get("/health", tags=["Health Check"])
    def health_check():
        try:
            db = SessionLocal()
            try:
                db.execute(text("SELECT 1"))
            finally:
                db.close()
            db_status = "healthy"
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_status = "unhealthy"
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "project": settings.PROJECT_NAME,
            "database": db_status,
        }

    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DoseTrackError)
    async def dosetrack_exception_handler(request: Request, exc: DoseTrackError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message} - {request.url}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message,
                "detail": exc.detail,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Global HTTP exception handler"""
        logger.error(f"HTTP {exc.status_code}: {exc.detail} - {request.url}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": exc.detail,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc!r} - {request.url}")
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "code": "internal_error",
                "message": "Internal server error",
                "status_code": 500,
            },
        )


app = create_application()


if __name__ == "__main__":
    uvicorn.run(
        "dosetrack.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
    )
