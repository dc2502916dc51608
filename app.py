"""
Embassy student portal API: documents, messaging, announcements and support.
"""
import shutil
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import config
from database.connection import Database
from storage.local_store import LocalObjectStore
from storage.s3_client import S3ObjectStore
from core.exceptions import PortalError
from core.logger import logger
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from middleware.auth_middleware import AuthRequiredMiddleware
from services.email_service import build_mail_client
from services.sms_service import create_sms_relay
from routers.auth import router as auth_router
from routers.users import router as users_router
from routers.messages import router as messages_router
from routers.documents import router as documents_router
from routers.announcements import router as announcements_router
from routers.support import router as support_router
from routers.notifications import router as notifications_router
from routers.audit import router as audit_router
from routers.dashboards import router as dashboards_router
from routers.sms import router as sms_router
from routers.realtime import router as realtime_router


def _init_object_store():
    """S3 when enabled and reachable, local uploads directory otherwise."""
    if config.USE_S3:
        try:
            store = S3ObjectStore(
                bucket_name=config.S3_BUCKET_NAME,
                aws_access_key_id=config.S3_ACCESS_KEY_ID,
                aws_secret_access_key=config.S3_SECRET_ACCESS_KEY,
                region_name=config.S3_REGION,
                endpoint_url=config.S3_ENDPOINT_URL,
                public_base_url=config.S3_PUBLIC_BASE_URL,
                auto_create_bucket=True,
            )
            logger.info(f"S3 object store initialized (bucket: {config.S3_BUCKET_NAME})")
            return store
        except Exception as e:
            logger.error(f"Failed to initialize S3 client: {e}", exc_info=True)
            logger.warning("Continuing without S3 - files will be stored locally")
    else:
        logger.info("S3 storage disabled - using local storage")
    return LocalObjectStore(config.UPLOADS_DIR, public_base_url=config.PUBLIC_BASE_URL)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database, object storage, SMS relay and mail on startup.
    Collaborators already set on config (tests) are left untouched.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME} ({config.ENVIRONMENT})...")
    logger.info("=" * 60)

    # Initialize database
    if config.db is None:
        try:
            config.db = Database(
                database_url=config.DATABASE_URL,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW
            )
            # Create tables if they don't exist
            config.db.create_tables()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise
    config.db.ensure_system_user(config.SMS_SYSTEM_SENDER_ID)

    if config.object_store is None:
        config.object_store = _init_object_store()

    if config.sms_relay is None:
        config.sms_relay = create_sms_relay(config.db)

    app.state.mail = build_mail_client()

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Document verification, messaging, announcements and support for embassy students",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR
)
# Logs unauthenticated requests to protected routes; dependencies enforce auth
app.add_middleware(AuthRequiredMiddleware)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=503,
        content={"code": "STORE_ERROR", "detail": "Database operation failed", "details": {}}
    )


# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(messages_router)
app.include_router(documents_router)
app.include_router(announcements_router)
app.include_router(support_router)
app.include_router(notifications_router)
app.include_router(audit_router)
app.include_router(dashboards_router)
app.include_router(sms_router)
app.include_router(realtime_router)

# Locally stored documents (public URLs point here when S3 is disabled)
app.mount("/files", StaticFiles(directory=str(config.UPLOADS_DIR), check_dir=False), name="files")


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "docs": "/docs",
        "s3_enabled": isinstance(config.object_store, S3ObjectStore),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    # Check database
    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except SQLAlchemyError as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    # Check object storage
    store = config.object_store
    if isinstance(store, S3ObjectStore):
        try:
            store.s3_client.head_bucket(Bucket=store.bucket_name)
            health_status["checks"]["storage"] = {"status": "ok", "backend": "s3", "bucket": store.bucket_name}
        except Exception as e:
            health_status["checks"]["storage"] = {"status": "error", "backend": "s3", "error": str(e)}
            health_status["status"] = "degraded"
    elif store is not None:
        health_status["checks"]["storage"] = {"status": "ok", "backend": "local"}
    else:
        health_status["checks"]["storage"] = {"status": "error", "error": "not initialized"}
        health_status["status"] = "degraded"

    health_status["checks"]["sms_relay"] = {
        "status": "ok" if config.sms_relay is not None else "disabled",
        "backend": type(config.sms_relay).__name__ if config.sms_relay is not None else None,
    }

    # Check disk space
    try:
        disk_usage = shutil.disk_usage(config.UPLOADS_DIR if config.UPLOADS_DIR.exists() else config.BASE_DIR)
        free_gb = disk_usage.free / (1024 ** 3)
        health_status["checks"]["disk"] = {
            "free_gb": round(free_gb, 2),
            "percent_free": round((disk_usage.free / disk_usage.total) * 100, 2)
        }
        if free_gb < 1:
            health_status["status"] = "degraded"
    except OSError as e:
        health_status["checks"]["disk"] = {"error": str(e)}

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
