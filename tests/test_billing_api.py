"""POST /api/billing/paystack/checkout with the Paystack API stubbed out."""

from __future__ import annotations

import io
import json
import re
from urllib import error as url_error
from urllib.parse import parse_qs, urlparse

import pytest

from kidhub.routers import billing

URL = "/api/billing/paystack/checkout"


class _FakeResponse:
    def __init__(self, payload):
        self._body = json.dumps(payload).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def paystack(monkeypatch):
    """Records outbound requests; ``reply`` is what the next call returns or raises."""
    state = {"requests": [], "reply": {"status": True, "data": {"authorization_url": "https://checkout.paystack.test/abc"}}}

    def fake_urlopen(req, timeout=None):
        state["requests"].append({
            "url": req.full_url,
            "method": req.get_method(),
            "headers": dict(req.header_items()),
            "body": json.loads(req.data.decode("utf-8")),
            "timeout": timeout,
        })
        reply = state["reply"]
        if isinstance(reply, Exception):
            raise reply
        return _FakeResponse(reply)

    monkeypatch.setattr(billing.url_request, "urlopen", fake_urlopen)
    return state


def test_checkout_initializes_transaction(client, school, paystack):
    response = client.post(URL, json={"plan": "yearly", "next": "/kids.html"})
    assert response.status_code == 200
    body = response.json()
    assert body["authorizationUrl"] == "https://checkout.paystack.test/abc"
    assert re.match(r"^KBH_[0-9a-z]+_[A-Z2-9]{6}$", body["reference"])

    [sent] = paystack["requests"]
    assert sent["url"] == "https://api.paystack.test/transaction/initialize"
    assert sent["method"] == "POST"
    assert sent["headers"]["Authorization"] == "Bearer sk_test_4f1c2b9e8d7a6c5b4a3f2e1d"
    assert sent["body"]["email"] == "teacher1@school.test"
    assert sent["body"]["amount"] == 90000
    assert sent["body"]["reference"] == body["reference"]
    assert sent["body"]["metadata"]["plan"] == "yearly"
    assert sent["body"]["metadata"]["uid"] == "teacher1"
    callback = urlparse(sent["body"]["callback_url"])
    assert parse_qs(callback.query) == {"next": ["/kids.html"]}


def test_checkout_defaults_to_monthly(client, school, paystack):
    client.post(URL, json={})
    assert paystack["requests"][0]["body"]["amount"] == 10000


def test_checkout_rejects_unknown_plan(client, school, paystack):
    response = client.post(URL, json={"plan": "pending"})
    assert response.status_code == 400
    assert response.json()["code"] == "CHECKOUT_PLAN_INVALID"
    assert paystack["requests"] == []


def test_checkout_rejects_absolute_next(client, school, paystack):
    assert client.post(URL, json={"next": "https://evil.test/"}).status_code == 400
    assert client.post(URL, json={"next": "//evil.test/"}).status_code == 400


def test_checkout_without_email_is_409(client, fake_db, caller, paystack):
    caller.clear()
    caller["uid"] = "ghost"
    response = client.post(URL, json={"plan": "monthly"})
    assert response.status_code == 409
    assert paystack["requests"] == []


def test_provider_http_error_is_502_and_not_retried(client, school, paystack):
    paystack["reply"] = url_error.HTTPError(
        "https://api.paystack.test/transaction/initialize", 400, "Bad Request", {},
        io.BytesIO(b'{"status": false, "message": "Invalid key"}'),
    )
    response = client.post(URL, json={"plan": "monthly"})
    assert response.status_code == 502
    assert response.json()["error"] == "Invalid key"
    assert len(paystack["requests"]) == 1


def test_provider_unreachable_is_502(client, school, paystack):
    paystack["reply"] = url_error.URLError("timed out")
    response = client.post(URL, json={"plan": "monthly"})
    assert response.status_code == 502
    assert response.json()["code"] == "PAYSTACK_UNREACHABLE"
    assert len(paystack["requests"]) == 1


def test_provider_status_false_is_502(client, school, paystack):
    paystack["reply"] = {"status": False, "message": "Duplicate Transaction Reference"}
    response = client.post(URL, json={"plan": "monthly"})
    assert response.status_code == 502
    assert response.json()["code"] == "PAYSTACK_REJECTED"


def test_provider_without_url_is_502(client, school, paystack):
    paystack["reply"] = {"status": True, "data": {}}
    assert client.post(URL, json={}).json()["code"] == "PAYSTACK_URL_MISSING"
