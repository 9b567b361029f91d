"""Bearer token validation for tracking pings."""

from __future__ import annotations

import hmac
from datetime import datetime, timezone
from typing import Optional

from ..errors import AuthenticityError, ExpiredOrInactiveError
from .sessions import TrackingSession


def tokens_match(stored: str, supplied: str) -> bool:
    return hmac.compare_digest(stored.encode("utf-8"), supplied.encode("utf-8"))


def validate_session_token(
    session: TrackingSession,
    token: str,
    now: Optional[datetime] = None,
) -> TrackingSession:
    """Return ``session`` if ``token`` currently authorizes it.

    Checked in order: active flag, token, expiry. A session without a
    readable expiry is treated as expired.
    """
    if not session.is_active:
        raise ExpiredOrInactiveError("session inactive", code="SESSION_INACTIVE")

    if not session.token or not tokens_match(session.token, token):
        raise AuthenticityError("bad token", code="TOKEN_INVALID")

    current = now or datetime.now(timezone.utc)
    if session.expires_at is None or current > session.expires_at:
        raise ExpiredOrInactiveError("session expired", code="SESSION_EXPIRED")

    return session
