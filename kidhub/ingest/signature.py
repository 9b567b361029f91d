"""Paystack webhook signature verification.

Paystack signs the raw request body with HMAC-SHA-512 keyed by the account
secret and sends the hex digest in ``x-paystack-signature``. The digest must
be computed over the exact bytes received; parsing and re-serializing the
JSON first changes the bytes and breaks verification.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from ..errors import AuthenticityError, InternalError

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = compute_signature(raw_body, secret)
    # Header may arrive upper-cased; hex compare is case-insensitive.
    supplied = signature.strip().lower().encode("ascii", "replace")
    return hmac.compare_digest(expected.encode("ascii"), supplied)


def require_valid_signature(raw_body: bytes, signature: Optional[str], secret: str) -> None:
    """Raise unless ``signature`` authenticates ``raw_body``."""
    if not secret:
        raise InternalError("Missing secret", code="WEBHOOK_SECRET_MISSING")
    if not signature:
        raise AuthenticityError("Missing signature", code="SIGNATURE_MISSING", status_code=400)
    if not verify_signature(raw_body, signature, secret):
        raise AuthenticityError("Invalid signature", code="SIGNATURE_INVALID", status_code=400)
