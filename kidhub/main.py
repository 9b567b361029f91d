"""KidHub API - Main Application.

FastAPI application for the school/parenting platform's untrusted ingress:
the Paystack webhook, GPS tracking sessions and pings, plus checkout
initialization for signed-in users.

Usage:
    uvicorn kidhub.main:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import get_firebase_app, get_firestore, get_settings
from .errors import GatewayError, error_response
from .middleware.rate_limit import setup_rate_limiting
from .routers import billing, health, tracking, webhooks

# =============================================================================
# CONFIGURATION
# =============================================================================

DEBUG_MODE = os.environ.get("DEBUG", "false").lower() == "true"
API_VERSION = health.API_VERSION

# Tracker pages and the web app call the API cross-origin.
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "ALLOWED_ORIGINS",
        "https://kidobabohub.web.app,https://kidobabohub.firebaseapp.com,http://localhost:5000",
    ).split(",")
    if origin.strip()
]

logging.basicConfig(
    level=logging.DEBUG if DEBUG_MODE else logging.INFO,
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
)
logger = logging.getLogger("kidhub.main")


# =============================================================================
# LIFESPAN (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting KidHub API v{API_VERSION}")
    logger.info(f"Debug mode: {DEBUG_MODE}")

    try:
        get_settings()
        get_firebase_app()
        logger.info("Firebase initialized")
        get_firestore()
        logger.info("Firestore connected")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down KidHub API")


# =============================================================================
# APPLICATION
# =============================================================================

if DEBUG_MODE:
    app = FastAPI(title="KidHub API", version=API_VERSION, lifespan=lifespan)
else:
    app = FastAPI(
        title="KidHub API",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )


# =============================================================================
# MIDDLEWARE
# =============================================================================

setup_rate_limiting(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    if "server" in response.headers:
        del response.headers["server"]

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Cache-Control"] = "no-store"

    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.utcnow()

    response = await call_next(request)

    duration_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
    logger.debug(
        f"{request.method} {request.url.path} "
        f"-> {response.status_code} ({duration_ms:.0f}ms)"
    )

    return response


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.error}")
    return exc.to_response()


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()})
    return error_response(
        400,
        error="Invalid request",
        code="VALIDATION_ERROR",
        details={"fields": fields} if fields else None,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Uncaught exceptions: log internally, answer with a generic message."""
    logger.exception(f"Unhandled exception on {request.url.path}")

    if DEBUG_MODE:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": str(exc), "code": "INTERNAL_ERROR", "type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Server error", "code": "INTERNAL_ERROR"},
    )


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(tracking.router, prefix="/api", tags=["Tracking"])


@app.get("/")
async def root():
    return {
        "name": "KidHub API",
        "version": API_VERSION,
        "status": "running"
    }
