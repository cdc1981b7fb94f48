"""
Zielvereinbarung Digital Backend
FastAPI application entry point

- Server-side sessions behind an HttpOnly cookie
- Fixed-window rate limiting (store owned by the app, swept in background)
- Error sanitization middleware
- Security headers
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from sqlalchemy import text

from zielvereinbarung import __version__
from zielvereinbarung.api.routes import audit, auth, cron, entries, forms, users
from zielvereinbarung.core.config import settings
from zielvereinbarung.core.database import AsyncSessionLocal
from zielvereinbarung.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from zielvereinbarung.core.logging_config import setup_logging
from zielvereinbarung.core.rate_limit import MemoryRateLimitStore, RateLimitStore
from zielvereinbarung.core.security_headers import SecurityHeadersMiddleware
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.jobs.cleanup import CleanupScheduler
from zielvereinbarung.services.email_provider import close_email_provider

# Import models to register them with SQLAlchemy
from zielvereinbarung import models  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start background cleanup on startup, stop it and close clients on shutdown."""
    scheduler: CleanupScheduler = app.state.cleanup_scheduler
    await scheduler.start()

    yield

    await scheduler.stop()
    await close_email_provider()
    logger.info("Email HTTP client closed")


def create_app(
    rate_limit_store: Optional[RateLimitStore] = None,
    session_factory=None,
) -> FastAPI:
    """
    Build the application.

    Args:
        rate_limit_store: Store for rate limit counters (default: in-memory)
        session_factory: Async context manager factory for background DB
            sessions (default: core.database.get_db_session)
    """
    app = FastAPI(
        lifespan=lifespan,
        title="Zielvereinbarung Digital API",
        description="Sessions, password reset, access codes and audit logging for Zielvereinbarung Digital.",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    app.state.rate_limit_store = rate_limit_store or MemoryRateLimitStore()
    scheduler_kwargs = {"session_factory": session_factory} if session_factory else {}
    app.state.cleanup_scheduler = CleanupScheduler(app.state.rate_limit_store, **scheduler_kwargs)

    register_exception_handlers(app)

    # Error sanitization (catches unhandled exceptions)
    app.add_middleware(ErrorSanitizationMiddleware)

    # Security headers (CSP, X-Frame-Options, etc.)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
    app.include_router(forms.router, prefix="/api", tags=["Forms"])
    app.include_router(entries.router, prefix="/api", tags=["Entries"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])
    app.include_router(audit.router, prefix="/api/audit", tags=["Audit"])
    app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])

    @app.get("/", tags=["Health"])
    async def root():
        return {
            "message": "Zielvereinbarung Digital API",
            "version": __version__,
            "status": "operational",
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check with DB ping. Returns 503 if the database is unreachable."""
        health_status = {
            "status": "healthy",
            "database": "unknown",
            "cleanup": app.state.cleanup_scheduler.heartbeat,
            "timestamp": utcnow().isoformat(),
        }

        try:
            async with AsyncSessionLocal() as db:
                await db.execute(text("SELECT 1"))
            health_status["database"] = "connected"
        except Exception as e:
            logger.error(f"Health check database ping failed: {type(e).__name__}: {e}")
            health_status["database"] = "error"
            health_status["status"] = "unhealthy"
            return JSONResponse(status_code=503, content=health_status)

        return health_status

    return app


setup_logging()
app = create_app()
