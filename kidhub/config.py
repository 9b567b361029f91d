"""Runtime configuration for the KidHub API.

Values are read from the environment once at startup and handed to routes
through ``Depends(get_settings)``. Nothing in the ingestion path reads
``os.environ`` directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _bool_env(name: str, default: bool = False) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _str_env(name: str, default: str = "") -> str:
    return str(os.environ.get(name, default)).strip()


@dataclass(frozen=True)
class GatewaySettings:
    """Settings shared by the webhook, checkout and tracking routers."""

    # Shared HMAC secret and Paystack API key. Kept out of repr so it never
    # ends up in a log line.
    paystack_secret_key: str = field(default="", repr=False)
    paystack_api_base: str = "https://api.paystack.co"
    paystack_api_timeout_sec: float = 8.0
    tracker_base_url: str = "https://kidobabohub.web.app/tracker.html"
    checkout_callback_url: str = "https://kidobabohub.web.app/pay.html"
    ledger_collection: str = "paystack_events"
    app_name: str = "kidobabohub"
    debug: bool = False

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            paystack_secret_key=_str_env("PAYSTACK_SECRET_KEY"),
            paystack_api_base=_str_env("PAYSTACK_API_BASE", "https://api.paystack.co").rstrip("/"),
            paystack_api_timeout_sec=float(os.environ.get("PAYSTACK_API_TIMEOUT_SEC", "8")),
            tracker_base_url=_str_env("TRACKER_BASE_URL", "https://kidobabohub.web.app/tracker.html"),
            checkout_callback_url=_str_env("CHECKOUT_CALLBACK_URL", "https://kidobabohub.web.app/pay.html"),
            ledger_collection=_str_env("PAYSTACK_LEDGER_COLLECTION", "paystack_events"),
            app_name=_str_env("APP_NAME", "kidobabohub"),
            debug=_bool_env("DEBUG", False),
        )
