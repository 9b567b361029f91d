"""Shared fixtures.

Firestore is replaced by ``tests.fakes.FakeFirestore`` and Firebase Auth by a
dependency override, so the suite never needs credentials or network.
"""

from __future__ import annotations

import os
import tempfile

# Must be set before kidhub modules are imported.
os.environ.setdefault("RATELIMIT_ENABLED", "false")
os.environ.setdefault("KIDHUB_LOG_DIR", tempfile.mkdtemp(prefix="kidhub-logs-"))

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from kidhub.config import GatewaySettings
from kidhub.dependencies import get_firestore, get_settings, verify_firebase_token
from kidhub.main import app
from kidhub.middleware.rate_limit import limiter

from tests.fakes import FakeFirestore
from tests.helpers import ORG_ID, WEBHOOK_SECRET


@pytest.fixture
def fake_db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(
        paystack_secret_key=WEBHOOK_SECRET,
        paystack_api_base="https://api.paystack.test",
        tracker_base_url="https://tracker.test/tracker.html",
        checkout_callback_url="https://app.test/pay.html",
    )


@pytest.fixture
def caller() -> Dict[str, Any]:
    """Claims returned by the overridden Firebase token check; tests may mutate."""
    return {"uid": "teacher1", "email": "teacher1@school.test"}


@pytest.fixture
def client(fake_db, settings, caller):
    limiter.enabled = False
    app.dependency_overrides[get_firestore] = lambda: fake_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[verify_firebase_token] = lambda: caller
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def school(fake_db) -> FakeFirestore:
    """One org with a teacher, a linked parent, an unlinked parent and a student."""
    fake_db.seed("users/teacher1", {"email": "teacher1@school.test", "orgId": ORG_ID, "role": "teacher"})
    fake_db.seed("users/parent1", {"email": "parent1@home.test", "orgId": ORG_ID, "role": "parent"})
    fake_db.seed("users/parent1/children/stu1", {"studentId": "stu1"})
    fake_db.seed("users/parent2", {"email": "parent2@home.test", "orgId": ORG_ID, "role": "parent"})
    fake_db.seed(f"orgs/{ORG_ID}/students/stu1", {"name": "Amani", "className": "P4"})
    return fake_db
