"""Health endpoints and app-level behaviour."""

from __future__ import annotations

from kidhub.config import GatewaySettings


def test_health_endpoint(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_firebase_health_reports_secret_presence(client, fake_db):
    body = client.get("/api/health/firebase").json()
    assert body["status"] == "healthy"
    assert body["webhookSecretConfigured"] is True


def test_security_headers(client):
    response = client.get("/api/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"


def test_settings_repr_hides_secret():
    settings = GatewaySettings(paystack_secret_key="sk_live_supersecret")
    assert "sk_live_supersecret" not in repr(settings)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", " sk_env ")
    monkeypatch.setenv("PAYSTACK_API_BASE", "https://api.paystack.co/")
    monkeypatch.setenv("DEBUG", "yes")
    settings = GatewaySettings.from_env()
    assert settings.paystack_secret_key == "sk_env"
    assert settings.paystack_api_base == "https://api.paystack.co"
    assert settings.debug is True
