"""Pydantic models for the KidHub API.

Inbound models for the untrusted endpoints parse numbers explicitly and
fail closed: NaN, infinities, booleans and non-numeric strings are rejected
instead of being coerced to zero.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, validator


# =============================================================================
# INPUT VALIDATION PATTERNS
# =============================================================================

SESSION_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{1,64}$')
STUDENT_ID_PATTERN = re.compile(r'^[\w\-]{1,128}$')
# Firestore rejects '.', '..' and '__*__' as document ids.
REFERENCE_PATTERN = re.compile(r'^(?!\.\.?$)(?!__.*__$)[^/]{1,200}$')
MAX_TOKEN_LENGTH = 128


def parse_minor_units(value: Any) -> int:
    """Parse a provider amount in minor currency units.

    Accepts ints and digit-only strings. Anything else raises ValueError.
    """
    if isinstance(value, bool):
        raise ValueError('amount must be an integer')
    if isinstance(value, int):
        if value < 0:
            raise ValueError('amount must not be negative')
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError('amount must be an integer')


def parse_finite_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError(f'{name} must be a number')
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValueError(f'{name} must be a number')
    else:
        raise ValueError(f'{name} must be a number')
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f'{name} must be a finite number')
    return number


# =============================================================================
# PAYSTACK WEBHOOK
# =============================================================================

class PaystackEnvelope(BaseModel):
    """Outer webhook envelope. ``data`` is validated per event type."""
    event: str = Field(..., min_length=1, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)

    @validator('data', pre=True)
    def validate_data(cls, v):
        # Non-charge events may carry a null data block.
        return v if v is not None else {}


class PaystackCustomer(BaseModel):
    email: Optional[str] = None

    @validator('email', pre=True)
    def normalize_email(cls, v):
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError('customer.email must be a string')
        v = v.strip().lower()
        return v or None


class PaystackChargeData(BaseModel):
    """``data`` block of a ``charge.success`` event."""
    reference: Optional[str] = None
    amount: int
    customer: PaystackCustomer = Field(default_factory=PaystackCustomer)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @validator('reference', pre=True)
    def validate_reference(cls, v):
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError('reference must be a string')
        v = v.strip()
        if not v:
            return None
        if not REFERENCE_PATTERN.match(v):
            raise ValueError('reference has an invalid format')
        return v

    @validator('amount', pre=True)
    def validate_amount(cls, v):
        return parse_minor_units(v)

    @validator('customer', pre=True)
    def validate_customer(cls, v):
        return v if v is not None else {}

    @validator('metadata', pre=True)
    def validate_metadata(cls, v):
        # Paystack sends an empty string when no metadata was attached.
        if v is None or v == "":
            return {}
        if not isinstance(v, dict):
            raise ValueError('metadata must be an object')
        return v

    @property
    def email(self) -> Optional[str]:
        return self.customer.email

    @property
    def declared_plan(self) -> str:
        return str(self.metadata.get('plan') or '').strip().lower()


class WebhookAck(BaseModel):
    ok: bool = True
    status: str  # ignored | duplicate | no_email | no_match | processed


# =============================================================================
# TRACKING
# =============================================================================

class TrackingSessionRequest(BaseModel):
    studentId: str

    @validator('studentId', pre=True)
    def validate_student_id(cls, v):
        v = str(v or '').strip()
        if not STUDENT_ID_PATTERN.match(v):
            raise ValueError('studentId required')
        return v


class TrackingSessionResponse(BaseModel):
    ok: bool = True
    sessionId: str
    trackerUrl: str
    expiresAt: str


class PingRequest(BaseModel):
    """Location ping from a tracker page. Carries its own capability."""
    sid: str
    tok: str
    lat: float
    lng: float
    acc: float = 0.0

    @validator('sid', pre=True)
    def validate_sid(cls, v):
        v = v.strip() if isinstance(v, str) else ''
        if not SESSION_ID_PATTERN.match(v):
            raise ValueError('sid and tok required')
        return v

    @validator('tok', pre=True)
    def validate_tok(cls, v):
        v = v.strip() if isinstance(v, str) else ''
        if not v or len(v) > MAX_TOKEN_LENGTH:
            raise ValueError('sid and tok required')
        return v

    @validator('lat', pre=True)
    def validate_lat(cls, v):
        lat = parse_finite_number(v, 'lat')
        if lat < -90 or lat > 90:
            raise ValueError('lat out of range')
        return lat

    @validator('lng', pre=True)
    def validate_lng(cls, v):
        lng = parse_finite_number(v, 'lng')
        if lng < -180 or lng > 180:
            raise ValueError('lng out of range')
        return lng

    @validator('acc', pre=True)
    def validate_acc(cls, v):
        if v is None or v == '':
            return 0.0
        acc = parse_finite_number(v, 'acc')
        if acc < 0:
            raise ValueError('acc must not be negative')
        return acc


class PingResponse(BaseModel):
    ok: bool = True


class StudentSummary(BaseModel):
    studentId: str
    name: str = ''
    className: str = ''


class StudentLocationResponse(BaseModel):
    ok: bool = True
    student: StudentSummary
    lastLocation: Optional[Dict[str, Any]] = None
    pings: List[Dict[str, Any]]


class RevokeSessionResponse(BaseModel):
    ok: bool = True
    sessionId: str
    isActive: bool = False


# =============================================================================
# CHECKOUT
# =============================================================================

class CheckoutRequest(BaseModel):
    plan: str = 'monthly'
    next: str = '/studentsdashboard.html'

    @validator('plan', pre=True)
    def normalize_plan(cls, v):
        return str(v or 'monthly').strip().lower()

    @validator('next', pre=True)
    def validate_next(cls, v):
        v = str(v or '/studentsdashboard.html').strip()
        # Relative paths only; the callback host is fixed by configuration.
        if not v.startswith('/') or v.startswith('//'):
            raise ValueError('next must be a relative path')
        return v


class CheckoutResponse(BaseModel):
    ok: bool = True
    authorizationUrl: str
    reference: str


class ErrorResponse(BaseModel):
    """Standard error response format."""
    ok: bool = False
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None
