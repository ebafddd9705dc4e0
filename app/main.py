"""
Main FastAPI Application Entry Point
"""

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import traceback

from app.config import settings
from app.database import init_db, health_check as database_health_check
from app.exceptions import BreakGlassError, PersistenceError
from app.routers import auth, break_glass, cron, logs
from app.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.services.break_glass_watcher import (
    start_break_glass_watcher,
    stop_break_glass_watcher,
    get_break_glass_watcher_status,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.APP_NAME}")

    # Create all tables (this only creates tables that don't exist)
    try:
        init_db()
        logger.info("Database tables verified/created")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")

    # Sweep for expired break-glass sessions when an expiry is configured
    await start_break_glass_watcher()

    yield

    stop_break_glass_watcher()
    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Break-glass emergency access and role escalation for the campus LMS",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)


@app.exception_handler(BreakGlassError)
async def break_glass_exception_handler(request: Request, exc: BreakGlassError):
    """Translate domain errors to JSON. Only the public detail leaves the process."""
    if isinstance(exc, PersistenceError):
        logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    elif exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")

    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Global exception handler to catch and log all unhandled exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return proper JSON response with logging."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    logger.error(f"Stack trace:\n{traceback.format_exc()}")

    # Don't catch HTTPException, let FastAPI handle those
    if isinstance(exc, HTTPException):
        raise exc

    content = {"detail": "Internal server error", "path": str(request.url.path)}
    if settings.DEBUG:
        content["error_type"] = type(exc).__name__
        content["message"] = str(exc)

    return JSONResponse(status_code=500, content=content)


# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(break_glass.router, prefix="/api/break-glass", tags=["Break-Glass"])
app.include_router(logs.router, prefix="/api/logs", tags=["Audit Logs"])
app.include_router(cron.router, prefix="/api/cron", tags=["Scheduled Jobs"])


@app.get("/health")
async def health_check():
    """Simple health check for load balancers."""
    database_ok = database_health_check()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": "connected" if database_ok else "unavailable",
            "break_glass_watcher": get_break_glass_watcher_status(),
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
