"""GPS tracking router - session issuance, pings and location reads.

Endpoints:
    POST /api/tracking/sessions - Issue a 24h tracking session (Firebase Auth)
    POST /api/tracking/sessions/{session_id}/revoke - Deactivate a session (Firebase Auth)
    POST /api/tracking/ping - Location ping (session id + token, no Firebase Auth)
    GET  /api/tracking/students/{student_id}/locations - Last location and history (Firebase Auth)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from pydantic import ValidationError as PydanticValidationError

from ..config import GatewaySettings
from ..dependencies import (
    get_firestore,
    get_settings,
    require_org_member,
    require_student_access,
    verify_firebase_token,
)
from ..errors import (
    AuthenticityError,
    ExpiredOrInactiveError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ..ingest import LocationProjector, SessionRegistry, build_tracker_url, validate_session_token
from ..middleware.rate_limit import get_client_ip, rate_limit_ping, rate_limit_write
from ..models import (
    ErrorResponse,
    PingRequest,
    PingResponse,
    RevokeSessionResponse,
    StudentLocationResponse,
    StudentSummary,
    TrackingSessionRequest,
    TrackingSessionResponse,
)
from ..utils.security_logger import security_logger

router = APIRouter()
logger = logging.getLogger("kidhub.tracking")


def _student_ref(db, org_id: str, student_id: str):
    return db.collection("orgs").document(org_id).collection("students").document(student_id)


def _serialize(value: Any) -> Any:
    """Firestore values -> JSON-safe values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


async def _parse_ping(request: Request) -> PingRequest:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("body must be JSON", code="PING_BODY_INVALID")
    try:
        return PingRequest.model_validate(body)
    except PydanticValidationError as exc:
        errors = exc.errors()
        message = str(errors[0].get("msg", "invalid ping")).replace("Value error, ", "") if errors else "invalid ping"
        raise ValidationError(message, code="PING_INVALID")


@router.post(
    "/tracking/sessions",
    response_model=TrackingSessionResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@rate_limit_write
async def create_tracking_session(
    request: Request,
    payload: TrackingSessionRequest,
    decoded_token: dict = Depends(verify_firebase_token),
    db: firestore.Client = Depends(get_firestore),
    settings: GatewaySettings = Depends(get_settings),
) -> TrackingSessionResponse:
    """Issue a tracking link for one student.

    The returned trackerUrl is the capability: anyone holding it can post
    pings for this student until it expires.
    """
    uid = decoded_token["uid"]
    me = require_org_member(db, uid)
    org_id = me["orgId"]
    require_student_access(db, uid, me, payload.studentId)

    student_doc = _student_ref(db, org_id, payload.studentId).get()
    if not student_doc.exists:
        raise NotFoundError("Student not found.", code="STUDENT_NOT_FOUND")
    student = student_doc.to_dict() or {}

    session = SessionRegistry(db).issue(
        org_id=org_id,
        student_id=payload.studentId,
        issued_by=uid,
        issued_by_role=str(me.get("role") or ""),
        student_name=str(student.get("name") or ""),
    )

    return TrackingSessionResponse(
        sessionId=session.session_id,
        trackerUrl=build_tracker_url(settings.tracker_base_url, session),
        expiresAt=session.expires_at.isoformat(),
    )


@router.post(
    "/tracking/sessions/{session_id}/revoke",
    response_model=RevokeSessionResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@rate_limit_write
async def revoke_tracking_session(
    request: Request,
    session_id: str,
    decoded_token: dict = Depends(verify_firebase_token),
    db: firestore.Client = Depends(get_firestore),
) -> RevokeSessionResponse:
    uid = decoded_token["uid"]
    me = require_org_member(db, uid)

    registry = SessionRegistry(db)
    session = registry.resolve(session_id)
    # Sessions from other orgs are reported as missing, not forbidden.
    if session.org_id != me["orgId"]:
        raise NotFoundError("session not found", code="SESSION_NOT_FOUND")
    require_student_access(db, uid, me, session.student_id)

    registry.deactivate(session, revoked_by=uid)
    return RevokeSessionResponse(sessionId=session.session_id)


@router.post(
    "/tracking/ping",
    response_model=PingResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@rate_limit_ping
async def track_ping(
    request: Request,
    db: firestore.Client = Depends(get_firestore),
) -> PingResponse:
    """Accept a location from a tracker page holding a session capability."""
    ping = await _parse_ping(request)

    try:
        registry = SessionRegistry(db)
        try:
            session = registry.resolve(ping.sid)
            validate_session_token(session, ping.tok)
        except (NotFoundError, AuthenticityError, ExpiredOrInactiveError) as exc:
            security_logger.token_rejected(get_client_ip(request), ping.sid, exc.code)
            raise

        LocationProjector(db).apply(session, ping, request.headers.get("user-agent", ""))
    except GoogleAPICallError:
        logger.exception("Ping storage failed sid=%s", ping.sid)
        raise InternalError()

    return PingResponse()


@router.get(
    "/tracking/students/{student_id}/locations",
    response_model=StudentLocationResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_student_locations(
    student_id: str,
    limit: int = Query(default=20, ge=1, le=50),
    decoded_token: dict = Depends(verify_firebase_token),
    db: firestore.Client = Depends(get_firestore),
) -> StudentLocationResponse:
    """Last known location plus the most recent pings, newest first."""
    uid = decoded_token["uid"]
    me = require_org_member(db, uid)
    require_student_access(db, uid, me, student_id)

    student_ref = _student_ref(db, me["orgId"], student_id)
    student_doc = student_ref.get()
    if not student_doc.exists:
        raise NotFoundError("Student not found.", code="STUDENT_NOT_FOUND")
    student: Dict[str, Any] = student_doc.to_dict() or {}

    history = (
        student_ref.collection("locations")
        .order_by("createdAt", direction=firestore.Query.DESCENDING)
        .limit(limit)
        .stream()
    )
    pings = [_serialize(doc.to_dict() or {}) for doc in history]

    return StudentLocationResponse(
        student=StudentSummary(
            studentId=student_id,
            name=str(student.get("name") or ""),
            className=str(student.get("className") or ""),
        ),
        lastLocation=_serialize(student.get("lastLocation")) if student.get("lastLocation") else None,
        pings=pings,
    )
