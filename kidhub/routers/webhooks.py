"""Paystack webhook router.

Endpoints:
    POST /api/webhooks/paystack - charge notifications from Paystack

Every delivery is answered 200 unless it is forged, malformed or we failed
internally; Paystack retries anything else, and a retry cannot change the
outcome of an ignored or unmatched event.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore
from pydantic import ValidationError as PydanticValidationError

from ..config import GatewaySettings
from ..dependencies import get_firestore, get_settings
from ..errors import AuthenticityError, DuplicateError, InternalError, ValidationError
from ..ingest import IdempotencyLedger, SIGNATURE_HEADER, SubscriptionProjector, classify, require_valid_signature
from ..middleware.rate_limit import get_client_ip
from ..models import ErrorResponse, PaystackChargeData, PaystackEnvelope, WebhookAck
from ..utils.security_logger import security_logger

router = APIRouter()
logger = logging.getLogger("kidhub.webhooks")

CHARGE_SUCCESS = "charge.success"


def _parse_envelope(raw_body: bytes) -> PaystackEnvelope:
    try:
        body = json.loads(raw_body)
        return PaystackEnvelope.model_validate(body)
    except (ValueError, PydanticValidationError):
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors.
        raise ValidationError("Malformed body", code="WEBHOOK_BODY_INVALID")


def _parse_charge(data: dict) -> PaystackChargeData:
    try:
        return PaystackChargeData.model_validate(data)
    except PydanticValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise ValidationError(
            "Malformed charge data",
            code="WEBHOOK_DATA_INVALID",
            details={"fields": fields},
        )


@router.post(
    "/webhooks/paystack",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def paystack_webhook(
    request: Request,
    settings: GatewaySettings = Depends(get_settings),
    db: firestore.Client = Depends(get_firestore),
) -> WebhookAck:
    raw_body = await request.body()

    try:
        require_valid_signature(
            raw_body,
            request.headers.get(SIGNATURE_HEADER),
            settings.paystack_secret_key,
        )
    except AuthenticityError as exc:
        security_logger.signature_rejected(get_client_ip(request), request.url.path, exc.code)
        raise
    except InternalError:
        logger.error("Webhook received but PAYSTACK_SECRET_KEY is not configured")
        raise

    envelope = _parse_envelope(raw_body)
    if envelope.event != CHARGE_SUCCESS:
        logger.debug("Ignoring Paystack event %s", envelope.event)
        return WebhookAck(status="ignored")

    charge = _parse_charge(envelope.data)
    if not charge.email:
        logger.warning("charge.success without customer email reference=%s", charge.reference)
        return WebhookAck(status="no_email")

    classification = classify(charge)
    projector = SubscriptionProjector(db, IdempotencyLedger(db, settings.ledger_collection))
    try:
        result = projector.apply(charge, classification)
    except DuplicateError:
        security_logger.duplicate_delivery(charge.reference)
        return WebhookAck(status="duplicate")
    except GoogleAPICallError:
        logger.exception("Paystack projection failed reference=%s", charge.reference)
        raise InternalError()

    return WebhookAck(status=result.status)
