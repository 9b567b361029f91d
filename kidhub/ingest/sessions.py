"""Tracking session registry.

A tracking session is a 24 hour capability: whoever holds the session id and
its token may post location pings for one student. Sessions live under
``orgs/{orgId}/trackingSessions/{sessionId}`` and are resolved by id with a
collection-group query, so session ids must be unique across organizations.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

from google.cloud import firestore

from ..errors import NotFoundError

logger = logging.getLogger("kidhub.sessions")

SESSIONS_COLLECTION = "trackingSessions"
SESSION_TTL = timedelta(hours=24)

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 32
# Unambiguous symbols for human-visible ids (no 0/O, 1/I).
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_BASE36 = string.digits + string.ascii_lowercase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def random_code(length: int = 6) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_session_id() -> str:
    """Time-ordered id with a short random suffix."""
    return f"SID_{to_base36(int(time.time() * 1000))}_{random_code(5)}"


def generate_token(length: int = TOKEN_LENGTH) -> str:
    # 62 symbols, 32 draws: ~190 bits.
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def as_utc_datetime(value: Any) -> Optional[datetime]:
    """Normalize a stored instant (Firestore timestamp, datetime or epoch millis)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1_000_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, dict):
        seconds = value.get("seconds") or value.get("_seconds")
        if seconds is None:
            return None
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    return None


@dataclass
class TrackingSession:
    session_id: str
    token: str
    org_id: str
    student_id: str
    expires_at: Optional[datetime]
    is_active: bool
    student_name: str = ""
    created_by: str = ""
    created_by_role: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingSession":
        return cls(
            session_id=str(data.get("sessionId") or ""),
            token=str(data.get("token") or ""),
            org_id=str(data.get("orgId") or ""),
            student_id=str(data.get("studentId") or ""),
            expires_at=as_utc_datetime(data.get("expiresAt")),
            is_active=data.get("isActive") is True,
            student_name=str(data.get("studentName") or ""),
            created_by=str(data.get("createdBy") or ""),
            created_by_role=str(data.get("createdByRole") or ""),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "token": self.token,
            "orgId": self.org_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "createdBy": self.created_by,
            "createdByRole": self.created_by_role,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "expiresAt": self.expires_at,
            "isActive": self.is_active,
        }


def build_tracker_url(base_url: str, session: TrackingSession) -> str:
    """Tracker page link. The capability rides in the fragment, which browsers
    never send to the server hosting the page."""
    return (
        f"{base_url}#sid={quote(session.session_id, safe='')}"
        f"&tok={quote(session.token, safe='')}"
    )


class SessionRegistry:
    """Issues, resolves and deactivates tracking sessions."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def _session_ref(self, org_id: str, session_id: str):
        return (
            self.db.collection("orgs")
            .document(org_id)
            .collection(SESSIONS_COLLECTION)
            .document(session_id)
        )

    def issue(
        self,
        *,
        org_id: str,
        student_id: str,
        issued_by: str,
        issued_by_role: str = "",
        student_name: str = "",
        now: Optional[datetime] = None,
    ) -> TrackingSession:
        issued_at = now or _utcnow()
        session = TrackingSession(
            session_id=generate_session_id(),
            token=generate_token(),
            org_id=org_id,
            student_id=student_id,
            expires_at=issued_at + SESSION_TTL,
            is_active=True,
            student_name=student_name,
            created_by=issued_by,
            created_by_role=issued_by_role,
        )
        # create() so a colliding id fails instead of overwriting a live session.
        self._session_ref(org_id, session.session_id).create(session.to_document())
        logger.info(
            "Tracking session issued sid=%s org=%s student=%s",
            session.session_id, org_id, student_id,
        )
        return session

    def resolve(self, session_id: str) -> TrackingSession:
        query = (
            self.db.collection_group(SESSIONS_COLLECTION)
            .where("sessionId", "==", session_id)
            .limit(1)
        )
        doc = next(iter(query.stream()), None)
        if doc is None:
            raise NotFoundError("session not found", code="SESSION_NOT_FOUND")
        return TrackingSession.from_dict(doc.to_dict() or {})

    def deactivate(self, session: TrackingSession, *, revoked_by: str) -> TrackingSession:
        self._session_ref(session.org_id, session.session_id).set(
            {
                "isActive": False,
                "revokedAt": firestore.SERVER_TIMESTAMP,
                "revokedBy": revoked_by,
            },
            merge=True,
        )
        session.is_active = False
        logger.info("Tracking session revoked sid=%s by=%s", session.session_id, revoked_by)
        return session
