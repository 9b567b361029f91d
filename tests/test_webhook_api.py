"""POST /api/webhooks/paystack end to end."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from kidhub.config import GatewaySettings
from kidhub.dependencies import get_settings
from kidhub.main import app
from kidhub.utils.security_logger import SECURITY_LOG_FILE

from tests.helpers import charge_event, signed_post

URL = "/api/webhooks/paystack"


@pytest.fixture
def user(fake_db):
    fake_db.seed("users/u1", {"email": "a@x.com", "orgId": "org1", "role": "parent"})
    return fake_db


def test_end_to_end_monthly_activation_then_duplicate(client, user):
    before = datetime.now(timezone.utc)
    body = json.dumps(charge_event()).encode("utf-8")

    first = signed_post(client, body)
    assert first.status_code == 200
    assert first.json() == {"ok": True, "status": "processed"}

    doc = user.docs["users/u1"]
    assert doc["plan"] == "monthly"
    assert doc["status"] == "active"
    assert doc["lastPaymentRef"] == "R1"
    expected = before + timedelta(days=30)
    assert abs(doc["subscriptionEndsAt"] - expected) < timedelta(minutes=1)
    snapshot = dict(doc)

    second = signed_post(client, body)
    assert second.status_code == 200
    assert second.json() == {"ok": True, "status": "duplicate"}
    assert user.docs["users/u1"] == snapshot
    assert len(user.children("paystack_events")) == 1


def test_metadata_plan_beats_monthly_amount(client, user):
    response = signed_post(client, charge_event(plan="yearly"))
    assert response.status_code == 200
    assert user.docs["users/u1"]["plan"] == "yearly"


def test_unknown_amount_sets_pending_inactive(client, user):
    response = signed_post(client, charge_event(amount=4242))
    assert response.json()["status"] == "processed"
    doc = user.docs["users/u1"]
    assert doc["plan"] == "pending"
    assert doc["status"] == "inactive"
    assert "subscriptionEndsAt" not in doc


def test_email_is_normalized(client, user):
    signed_post(client, charge_event(email="  A@X.COM "))
    assert user.docs["users/u1"]["plan"] == "monthly"


def test_missing_signature_is_400_and_no_write(client, user):
    response = client.post(URL, content=json.dumps(charge_event()), headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["code"] == "SIGNATURE_MISSING"
    assert "plan" not in user.docs["users/u1"]
    assert user.commits == 0


def test_forged_signature_is_400_and_no_write(client, user):
    response = signed_post(client, charge_event(), secret="attacker-guess")
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Invalid signature", "code": "SIGNATURE_INVALID"}
    assert user.commits == 0


def test_missing_secret_is_500(client, user):
    app.dependency_overrides[get_settings] = lambda: GatewaySettings(paystack_secret_key="")
    response = signed_post(client, charge_event())
    assert response.status_code == 500
    assert response.json()["error"] == "Missing secret"
    assert user.commits == 0


def test_non_post_is_405(client):
    assert client.get(URL).status_code == 405
    assert client.put(URL, content=b"{}").status_code == 405


def test_other_events_are_ignored(client, user):
    response = signed_post(client, {"event": "transfer.success", "data": {"amount": "weird"}})
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert user.commits == 0


def test_other_event_with_null_data_is_ignored(client, user):
    response = signed_post(client, {"event": "transfer.success", "data": None})
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_missing_email_acknowledged_without_write(client, user):
    response = signed_post(client, charge_event(email=None))
    assert response.json()["status"] == "no_email"
    assert user.commits == 0


def test_unknown_user_acknowledged_and_reference_recorded(client, user):
    response = signed_post(client, charge_event(email="stranger@x.com"))
    assert response.status_code == 200
    assert response.json()["status"] == "no_match"
    assert "paystack_events/R1" in user.docs


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"data": {}}', b"\xff\xfe"])
def test_malformed_envelope_is_400(client, raw):
    response = signed_post(client, raw)
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_BODY_INVALID"


@pytest.mark.parametrize("amount", ["NaN", 100.5, True, None, "10,000", -5])
def test_bad_amount_is_400(client, user, amount):
    response = signed_post(client, charge_event(amount=amount))
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_DATA_INVALID"
    assert user.commits == 0


def test_numeric_string_amount_accepted(client, user):
    signed_post(client, charge_event(amount="90000"))
    assert user.docs["users/u1"]["plan"] == "yearly"


def test_reference_with_slash_rejected(client, user):
    response = signed_post(client, charge_event(reference="a/b"))
    assert response.status_code == 400


def test_storage_failure_is_generic_500(client, user):
    user.fail_writes = True
    response = signed_post(client, charge_event())
    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "Server error", "code": "INTERNAL_ERROR"}


@pytest.mark.parametrize("reference", [".", "..", "__ledger__"])
def test_reserved_document_id_reference_rejected(client, user, reference):
    response = signed_post(client, charge_event(reference=reference))
    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_DATA_INVALID"
    assert user.commits == 0


def test_duplicate_delivery_written_to_security_log(client, user):
    body = json.dumps(charge_event(reference="R-dup-log")).encode("utf-8")
    signed_post(client, body)
    assert signed_post(client, body).json()["status"] == "duplicate"

    lines = SECURITY_LOG_FILE.read_text().splitlines()
    events = [json.loads(line) for line in lines if "R-dup-log" in line]
    assert [e["event"] for e in events] == ["webhook_duplicate"]
