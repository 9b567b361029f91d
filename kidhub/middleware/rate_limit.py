"""Rate limiting middleware using slowapi.

Limits are per client IP:
- Tracking pings: 60 req/min (a tracker page pings every few seconds)
- Session issuance / revocation / checkout: 10 req/min

The Paystack webhook is not decorated; provider retries must never be
throttled into lost payments.
"""

from __future__ import annotations

import logging
import os

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from ..utils.security_logger import security_logger

logger = logging.getLogger("kidhub.rate_limit")

# Only honour proxy headers behind Cloudflare / a trusted reverse proxy.
_behind_cloudflare = os.environ.get("BEHIND_CLOUDFLARE", "").lower() in ("1", "true")
_trust_proxy_env = os.environ.get("TRUST_PROXY", "").lower() in ("1", "true")
TRUST_PROXY = _trust_proxy_env and _behind_cloudflare

if _trust_proxy_env and not _behind_cloudflare:
    logger.warning("TRUST_PROXY set without BEHIND_CLOUDFLARE=1; proxy headers will be ignored.")

RATELIMIT_ENABLED = os.environ.get("RATELIMIT_ENABLED", "true").lower() not in ("0", "false", "no", "off")


def get_client_ip(request: Request) -> str:
    if TRUST_PROXY:
        cf_ip = request.headers.get("CF-Connecting-IP")
        if cf_ip:
            return cf_ip.strip()
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


limiter = Limiter(
    key_func=get_client_ip,
    storage_uri="memory://",
    enabled=RATELIMIT_ENABLED,
)

rate_limit_ping = limiter.limit("60/minute")
rate_limit_write = limiter.limit("10/minute")


def setup_rate_limiting(app):
    """Attach the limiter and its 429 handler to ``app``."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _custom_rate_limit_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info("Rate limiting %s", "enabled" if limiter.enabled else "disabled")


async def _custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    security_logger.rate_limit_exceeded(
        ip=get_client_ip(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
        },
        headers={"Retry-After": "60"},
    )
