"""Health check router.

Endpoints:
    GET /api/health - Liveness
    GET /api/health/firebase - Firestore connectivity
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..dependencies import get_firestore, get_settings

router = APIRouter()
logger = logging.getLogger("kidhub.health")

API_VERSION = "1.0.0"


@router.get("/health")
async def health_check() -> dict:
    """Basic health check - no auth required."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
    }


@router.get("/health/firebase")
async def firebase_health(
    db = Depends(get_firestore),
    settings = Depends(get_settings),
) -> dict:
    """Performs a single read to verify Firestore connectivity."""
    now = datetime.now(timezone.utc).isoformat()
    try:
        # Even if the doc doesn't exist, the round trip proves connectivity.
        db.collection('_health').document('ping').get()
        return {
            "status": "healthy",
            "firestore": "connected",
            "webhookSecretConfigured": bool(settings.paystack_secret_key),
            "timestamp": now,
        }
    except Exception as e:
        logger.error(f"Firestore health check failed: {e}")
        return {
            "status": "unhealthy",
            "firestore": "error",
            "error": str(e) if settings.debug else "Firestore connection failed",
            "timestamp": now,
        }
