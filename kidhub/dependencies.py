"""FastAPI dependencies for configuration, Firestore and caller identity.

The untrusted endpoints (webhook, ping) only use ``get_settings`` and
``get_firestore``. Everything that issues capabilities or reads student data
additionally goes through ``verify_firebase_token`` and
``require_org_member``.
"""

from __future__ import annotations

import os
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

import firebase_admin
from firebase_admin import auth, credentials, firestore

from .config import GatewaySettings

logger = logging.getLogger("kidhub.dependencies")
security_logger = logging.getLogger("kidhub.security")

SERVICE_ACCOUNT_PATH = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")

STAFF_ROLES = ("admin", "teacher")
PARENT_ROLE = "parent"

bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# CONFIGURATION
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> GatewaySettings:
    """Load settings once per process."""
    settings = GatewaySettings.from_env()
    if not settings.paystack_secret_key:
        logger.warning("PAYSTACK_SECRET_KEY is not set; webhook and checkout will fail closed")
    return settings


# =============================================================================
# FIREBASE INITIALIZATION
# =============================================================================

_firebase_app: Optional[firebase_admin.App] = None
_firestore_client = None


def get_firebase_app() -> firebase_admin.App:
    """Get or initialize Firebase Admin app."""
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass

    if SERVICE_ACCOUNT_PATH:
        if not Path(SERVICE_ACCOUNT_PATH).exists():
            raise RuntimeError(f"Service account not found: {SERVICE_ACCOUNT_PATH}")
        cred = credentials.Certificate(SERVICE_ACCOUNT_PATH)
    else:
        # Cloud Run / Functions: runtime service account.
        cred = credentials.ApplicationDefault()

    _firebase_app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin initialized")
    return _firebase_app


def get_firestore():
    """Get Firestore client (singleton)."""
    global _firestore_client

    if _firestore_client is None:
        get_firebase_app()
        _firestore_client = firestore.client()
        logger.info("Firestore client initialized")

    return _firestore_client


# =============================================================================
# AUTHENTICATION
# =============================================================================

async def verify_firebase_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """Verify the Firebase ID token from the Authorization header.

    Returns:
        Decoded token claims including 'uid'

    Raises:
        HTTPException 401 on any auth failure
    """
    if credentials is None:
        _log_auth_failure(request, "missing_auth_header")
        raise HTTPException(401, "Please login first.")

    try:
        get_firebase_app()
        return auth.verify_id_token(credentials.credentials, check_revoked=True)
    except auth.RevokedIdTokenError:
        _log_auth_failure(request, "revoked_token")
        raise HTTPException(401, "Token has been revoked")
    except auth.ExpiredIdTokenError:
        _log_auth_failure(request, "expired_token")
        raise HTTPException(401, "Token has expired")
    except auth.InvalidIdTokenError as e:
        _log_auth_failure(request, "invalid_token", error=str(e))
        raise HTTPException(401, "Invalid token")
    except Exception as e:
        _log_auth_failure(request, "auth_error", error=str(e))
        raise HTTPException(401, "Authentication failed")


def _log_auth_failure(request: Request, reason: str, **extra):
    security_logger.warning({
        "event": "auth_failure",
        "reason": reason,
        "ip": request.client.host if request.client else "unknown",
        "path": request.url.path,
        **extra
    })


# =============================================================================
# ORGANIZATION MEMBERSHIP
# =============================================================================

def require_org_member(db, uid: str) -> Dict[str, Any]:
    """Fetch the caller's user doc and require an organization.

    Always reads Firestore; never trusts claims in the token for org or role.
    """
    user_doc = db.collection('users').document(uid).get()
    user_data = user_doc.to_dict() if user_doc.exists else None
    if not user_data or not user_data.get('orgId'):
        raise HTTPException(403, "No org. Join or create a school first.")
    return user_data


def require_student_access(db, uid: str, user_data: Dict[str, Any], student_id: str) -> None:
    """Staff see every student in their org; parents only linked children."""
    role = str(user_data.get('role') or '')
    if role in STAFF_ROLES:
        return
    if role == PARENT_ROLE:
        link = db.collection('users').document(uid).collection('children').document(student_id).get()
        if link.exists:
            return
        security_logger.warning({
            "event": "unlinked_child_access",
            "uid": uid,
            "student_id": student_id,
        })
        raise HTTPException(403, "Not linked to this child.")
    raise HTTPException(403, "Not allowed.")
