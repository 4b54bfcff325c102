"""
Workshop Portal API - Main Application

SECURITY FEATURES:
- Conditional API docs (disabled in production)
- RFC 7807 error responses without internal detail outside DEBUG
- Correlation ids on every request and log line
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from workshop_portal import __version__
from workshop_portal.api.v1.router import api_router
from workshop_portal.config import settings
from workshop_portal.database import init_db
from workshop_portal.exceptions import PortalException, create_exception_handlers
from workshop_portal.middleware import CorrelationIdMiddleware, CorrelationLogFilter
from workshop_portal.services.change_feed import get_change_feed
# Import all models to register them with SQLAlchemy metadata before init_db()
from workshop_portal.models import (  # noqa: F401
    User, InventoryItem, InventoryTransaction, Device, StrippedPart, Notification
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s/%(request_id)s] %(message)s",
)
for handler in logging.getLogger().handlers:
    handler.addFilter(CorrelationLogFilter())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Workshop Portal API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Change feed backend: {get_change_feed().backend}")
    # SECURITY: Don't log full database URL, just the driver
    logger.info(f"Database driver: {settings.DATABASE_URL.split('://', 1)[0]}")
    await init_db()
    logger.info("Database initialized successfully")
    yield
    logger.info("Shutting down Workshop Portal API...")


app = FastAPI(
    title="Workshop Portal API",
    description="Parts, toner and device claim tracking for field service engineers",
    version=__version__,
    docs_url="/docs" if settings.DOCS_ENABLED else None,
    redoc_url="/redoc" if settings.DOCS_ENABLED else None,
    lifespan=lifespan,
)

# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [settings.FRONTEND_URL]
if not settings.is_production:
    allowed_origins.extend([
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(PortalException, handlers["portal"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "change_feed": get_change_feed().backend,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "workshop_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
