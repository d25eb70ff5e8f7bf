"""
KPI Review Engine - FastAPI Application

KPI setting → acknowledgement → self-rating → manager review → confirmation.
Every route lives under settings.api_prefix; probes and docs stay at the root.
Errors of every kind leave as {"success": false, "errors": [{"msg", "code"}]}.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Union

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import app.models  # noqa: F401  registers the KPI tables
from app.core.config import settings
from app.core.exceptions import AppException
from app.core.init_system import init_system_data
from app.core.logging import request_id_var, setup_logging
from app.core.middleware import CorrelationIdMiddleware, LoggingMiddleware
from app.database import get_db, init_db
from app.models.rating_option import RatingOption
from app.routers.api_router import api_router

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)


def _error_body(msg: str, code: str, **extra) -> dict:
    error = {"msg": msg, "code": code}
    error.update({k: v for k, v in extra.items() if v is not None})
    return {"success": False, "errors": [error]}


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - Startup: create the review tables and seed the default rating scale
    - Shutdown: nothing to release beyond the engine pool
    """
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment}, build {settings.build_id})")
    try:
        init_db()
    except Exception as e:
        logger.error(f"Could not create the KPI review schema: {e}")
        raise
    init_system_data()

    yield

    logger.info(f"{settings.app_name} stopped")


# ============================================================================
# FASTAPI INSTANCE
# ============================================================================
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="KPI setting, self-rating, manager review and score calculation",
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# MIDDLEWARE STACK
# Last added runs first: CORS → correlation id → access log
# ============================================================================
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", settings.actor_id_header, settings.actor_role_header],
    expose_headers=[settings.request_id_header, "X-Process-Time"],
)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed review payloads: one entry per offending field, dotted path included."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({
            "field": ".".join(location) or "body",
            "msg": error["msg"],
            "code": "INVALID_PAYLOAD",
        })
    logger.warning(f"Rejected payload on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "errors": errors},
    )


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Workflow errors: validation, permission, missing KPI/review, unreachable API."""
    logger.warning(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, details=exc.details),
    )


@app.exception_handler(StarletteHTTPException)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=_error_body(message, f"HTTP_{exc.status_code}"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content=_error_body("An unexpected server error occurred.", "INTERNAL_ERROR", request_id=request_id_var.get() or None),
    )


# ============================================================================
# ROUTER INCLUSION
# ============================================================================
app.include_router(api_router, prefix=settings.api_prefix)


# ============================================================================
# OPERATIONAL ENDPOINTS (at root level)
# ============================================================================
@app.get("/", tags=["Health"])
def root():
    return {
        "message": f"{settings.app_name} API",
        "version": settings.version,
        "api": settings.api_prefix,
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe."""
    return {
        "status": "up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@app.get("/readiness", tags=["Health"])
def readiness_check(db: Session = Depends(get_db)):
    """Database reachable; reports whether a rating scale is configured or the default applies."""
    try:
        db.execute(text("SELECT 1"))
        configured = db.query(RatingOption).count()
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail="Service not ready")
    return {
        "status": "ready",
        "components": {
            "database": "connected",
            "rating_scale": "configured" if configured else "default",
        },
    }


@app.get("/liveness", tags=["Health"])
def liveness_check():
    return health_check()
