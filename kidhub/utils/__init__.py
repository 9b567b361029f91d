"""Utility modules for the API."""

from .security_logger import security_logger

__all__ = ['security_logger']
