"""Untrusted event ingestion: authenticate, gate, classify, project."""

from .classifier import Classification, classify
from .ledger import ClaimOutcome, IdempotencyLedger
from .projector import LocationProjector, SubscriptionProjector
from .sessions import SessionRegistry, TrackingSession, build_tracker_url
from .signature import SIGNATURE_HEADER, require_valid_signature, verify_signature
from .tokens import validate_session_token

__all__ = [
    'Classification',
    'classify',
    'ClaimOutcome',
    'IdempotencyLedger',
    'LocationProjector',
    'SubscriptionProjector',
    'SessionRegistry',
    'TrackingSession',
    'build_tracker_url',
    'SIGNATURE_HEADER',
    'require_valid_signature',
    'verify_signature',
    'validate_session_token',
]
