"""Billing router - Paystack checkout initialization.

The checkout only opens a payment page. Entitlements are granted by the
webhook once Paystack confirms the charge, never by this endpoint.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict
from urllib import error as url_error
from urllib import parse as url_parse
from urllib import request as url_request

from fastapi import APIRouter, Depends, Request
from google.cloud import firestore

from ..config import GatewaySettings
from ..dependencies import get_firestore, get_settings, verify_firebase_token
from ..errors import InternalError, UpstreamError, ValidationError
from ..ingest.classifier import PLAN_PRICES, is_known_plan
from ..ingest.sessions import random_code, to_base36
from ..middleware.rate_limit import rate_limit_write
from ..models import CheckoutRequest, CheckoutResponse, ErrorResponse

router = APIRouter()
logger = logging.getLogger("kidhub.billing")


def _new_reference() -> str:
    return f"KBH_{to_base36(int(time.time() * 1000))}_{random_code(6)}"


def _paystack_request_json(
    settings: GatewaySettings,
    path: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    """POST to the Paystack API once. Failures surface as UpstreamError.

    No retry here: a retried initialize could open two checkouts.
    """
    req = url_request.Request(
        url=f"{settings.paystack_api_base}/{path.lstrip('/')}",
        method="POST",
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Authorization": f"Bearer {settings.paystack_secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "kidhub-api/1.0",
        },
    )
    try:
        with url_request.urlopen(req, timeout=settings.paystack_api_timeout_sec) as resp:
            body_text = resp.read().decode("utf-8")
    except url_error.HTTPError as http_exc:
        message = ""
        try:
            parsed_error = json.loads(http_exc.read().decode("utf-8") or "{}")
            if isinstance(parsed_error, dict):
                message = str(parsed_error.get("message") or "")
        except Exception:
            message = ""
        raise UpstreamError(
            message or f"Paystack error ({http_exc.code})",
            code="PAYSTACK_HTTP_ERROR",
            details={"httpStatus": http_exc.code},
        ) from http_exc
    except (url_error.URLError, TimeoutError) as url_exc:
        raise UpstreamError(
            "Unable to reach Paystack",
            code="PAYSTACK_UNREACHABLE",
        ) from url_exc

    try:
        parsed = json.loads(body_text) if body_text else {}
    except ValueError as exc:
        raise UpstreamError("Paystack returned an invalid response", code="PAYSTACK_BAD_RESPONSE") from exc
    if not isinstance(parsed, dict) or parsed.get("status") is False:
        message = parsed.get("message") if isinstance(parsed, dict) else None
        raise UpstreamError(str(message or "Paystack initialize failed."), code="PAYSTACK_REJECTED")
    return parsed


@router.post(
    "/billing/paystack/checkout",
    response_model=CheckoutResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
@rate_limit_write
async def init_paystack_checkout(
    request: Request,
    payload: CheckoutRequest,
    decoded_token: dict = Depends(verify_firebase_token),
    db: firestore.Client = Depends(get_firestore),
    settings: GatewaySettings = Depends(get_settings),
) -> CheckoutResponse:
    """Create a Paystack transaction and return its authorization URL."""
    uid = decoded_token["uid"]
    user_doc = db.collection("users").document(uid).get()
    user_data = (user_doc.to_dict() or {}) if user_doc.exists else {}

    email = str(user_data.get("email") or decoded_token.get("email") or "").strip().lower()
    if not email:
        raise ValidationError(
            "No email found on this account.",
            code="CHECKOUT_EMAIL_MISSING",
            status_code=409,
        )

    if not is_known_plan(payload.plan):
        raise ValidationError("Invalid plan.", code="CHECKOUT_PLAN_INVALID")

    if not settings.paystack_secret_key:
        raise InternalError("Missing PAYSTACK_SECRET_KEY.", code="PAYSTACK_NOT_CONFIGURED")

    reference = _new_reference()
    callback_url = f"{settings.checkout_callback_url}?next={url_parse.quote(payload.next, safe='')}"

    data = _paystack_request_json(
        settings,
        "/transaction/initialize",
        {
            "email": email,
            "amount": PLAN_PRICES[payload.plan],
            "reference": reference,
            "callback_url": callback_url,
            "metadata": {
                "plan": payload.plan,
                "uid": uid,
                "next": payload.next,
                "app": settings.app_name,
            },
        },
    )

    auth_url = str((data.get("data") or {}).get("authorization_url") or "").strip()
    if not auth_url:
        raise UpstreamError("No authorization_url returned.", code="PAYSTACK_URL_MISSING")

    logger.info("Paystack checkout initialized uid=%s plan=%s reference=%s", uid, payload.plan, reference)
    return CheckoutResponse(authorizationUrl=auth_url, reference=reference)
