"""Test helpers shared across modules."""

from __future__ import annotations

import json
from typing import Any

from fastapi.testclient import TestClient

from kidhub.ingest.signature import compute_signature

WEBHOOK_SECRET = "sk_test_4f1c2b9e8d7a6c5b4a3f2e1d"
ORG_ID = "org1"


def signed_post(client: TestClient, payload: Any, secret: str = WEBHOOK_SECRET, **kwargs):
    """POST a webhook body signed exactly as Paystack would sign it."""
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    headers = {"x-paystack-signature": compute_signature(raw, secret), "Content-Type": "application/json"}
    headers.update(kwargs.pop("headers", {}))
    return client.post("/api/webhooks/paystack", content=raw, headers=headers, **kwargs)


def charge_event(reference: Any = "R1", email: Any = "a@x.com", amount: Any = 10000, plan: Any = None) -> dict:
    data: dict = {"reference": reference, "customer": {"email": email}, "amount": amount}
    if plan is not None:
        data["metadata"] = {"plan": plan}
    return {"event": "charge.success", "data": data}
