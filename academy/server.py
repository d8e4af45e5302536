import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from .admin_routes import admin_router
from .auth import auth_router, confirm_router
from .community_routes import announcements_router, forum_router, messages_router
from .config import settings
from .courses import course_router
from .db import create_database_and_tables, db_router
from .logger_config import request_id_var, setup_logging_from_settings
from .rate_limit import limiter, rate_limit_exceeded_handler
from .webhooks import webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, check secrets and optionally create the schema"""
    setup_logging_from_settings()
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
    startup_start = time.time()

    settings.validate_secrets()

    if settings.AUTO_CREATE_DB and not settings.is_production:
        try:
            create_database_and_tables()
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
    else:
        logger.info("AUTO_CREATE_DB disabled or production environment; skipping create_database_and_tables")

    logger.info(f"Server startup completed in {time.time() - startup_start:.2f}s")
    yield
    logger.info("Server shutdown initiated")


app = FastAPI(
    title=settings.APP_NAME,
    description="Online course platform: video lessons, progress, community and administration",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
)

app.include_router(db_router)
app.include_router(auth_router)
app.include_router(confirm_router)
app.include_router(course_router)
app.include_router(forum_router)
app.include_router(messages_router)
app.include_router(announcements_router)
app.include_router(admin_router)
app.include_router(webhook_router)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to prevent crashes"""
    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request: {request.method} {request.url.path}")
    logger.error(traceback.format_exc())

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# CORS: no credentialed wildcard origins in production
ALLOWED_ORIGINS = settings.get_cors_origins() or ["*"]
if settings.is_production and ALLOWED_ORIGINS == ["*"]:
    logger.warning("ALLOWED_ORIGINS is '*' in production; disabling allow_credentials for safety")
    _allow_credentials = False
else:
    _allow_credentials = ALLOWED_ORIGINS != ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=_allow_credentials,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
    expose_headers=["X-Request-ID"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers and a request id to all responses"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)

    start_time = time.time()
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        if process_time > 1.0:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {process_time:.2f}s")
    finally:
        request_id_var.reset(token)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["X-Request-ID"] = request_id

    return response


def main():
    uvicorn.run(
        "academy.server:app",
        host="0.0.0.0",  # nosec B104
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    main()
