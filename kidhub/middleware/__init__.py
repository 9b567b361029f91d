"""API middleware for rate limiting and client identification."""

from .rate_limit import get_client_ip, limiter, setup_rate_limiting

__all__ = [
    'get_client_ip',
    'limiter',
    'setup_rate_limiting',
]
