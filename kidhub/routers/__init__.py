"""API routers."""

from . import billing
from . import health
from . import tracking
from . import webhooks

__all__ = ['billing', 'health', 'tracking', 'webhooks']
