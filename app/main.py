"""
Driver Helper Bot - Main FastAPI Application
"""
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.core.middleware import setup_middleware, setup_exception_handlers
from app.api.routes import router as api_router
from app.db.database import engine, Base
from app.domain.services.document_storage import UPLOADS_ROUTE

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "Drivers", "description": "Read-only view of registered drivers (staff API key)."},
    {"name": "Requests", "description": "Pending advance payment and vacation requests (staff API key)."},
    {"name": "Webhooks", "description": "Telegram Bot API webhook."},
    {"name": "Health", "description": "Liveness probe."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Telegram bot for truck driver onboarding and HR communication: "
        "document collection, HR review, advance and vacation requests."
    ),
    openapi_tags=_OPENAPI_TAGS,
)

# Uploaded driver documents, served under the URLs stored on the driver rows
_UPLOAD_DIR = Path(settings.UPLOAD_DIR)
_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount(UPLOADS_ROUTE, StaticFiles(directory=_UPLOAD_DIR), name="uploads")

# Setup middleware (correlation ID, request logging, rate limit)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="Cheap check that the process is up; external dependencies are not probed.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "app": settings.APP_NAME}
