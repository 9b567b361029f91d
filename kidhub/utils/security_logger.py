"""Security audit logging for the ingestion gateway.

Structured, one-line JSON events for everything an attacker on the open
internet can trigger:
- Webhook signature rejections
- Tracking token rejections
- Unknown / expired / inactive session probes
- Duplicate webhook deliveries
- Rate limit violations

Secrets and bearer tokens are never part of an event.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

LOG_DIR = Path(os.environ.get("KIDHUB_LOG_DIR", Path(__file__).parent.parent.parent / "logs"))
SECURITY_LOG_FILE = LOG_DIR / "security.log"

MAX_LOG_SIZE = 10 * 1024 * 1024  # 10MB per file
BACKUP_COUNT = 5


class SecurityLogger:
    """Structured security event logger with rotation."""

    def __init__(self):
        self.logger = logging.getLogger("kidhub.security")
        self._setup_handler()

    def _setup_handler(self):
        if self.logger.handlers:
            return
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                SECURITY_LOG_FILE,
                maxBytes=MAX_LOG_SIZE,
                backupCount=BACKUP_COUNT,
            )
        except OSError as e:
            # Read-only filesystems (Cloud Run) still get the events via the root logger.
            logging.getLogger("kidhub.main").warning(f"Security log file unavailable: {e}")
            return
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(handler)
        self.logger.setLevel(logging.WARNING)

    def log_event(
        self,
        event_type: str,
        severity: str,  # 'low', 'medium', 'high'
        details: Dict[str, Any],
        ip: Optional[str] = None,
        path: Optional[str] = None,
    ):
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "severity": severity,
            "ip": ip,
            "path": path,
            **details,
        }
        event = {k: v for k, v in event.items() if v is not None}

        self.logger.warning(json.dumps(event, default=str))

    def signature_rejected(self, ip: str, path: str, reason: str):
        self.log_event(
            event_type="webhook_signature_rejected",
            severity="high",
            details={"reason": reason},
            ip=ip,
            path=path,
        )

    def token_rejected(self, ip: str, session_id: str, reason: str):
        """Failed tracking ping. Severity depends on whether the session exists."""
        self.log_event(
            event_type="tracking_token_rejected",
            severity="medium" if reason == "SESSION_NOT_FOUND" else "high",
            details={"session_id": session_id, "reason": reason},
            ip=ip,
        )

    def duplicate_delivery(self, reference: str):
        self.log_event(
            event_type="webhook_duplicate",
            severity="low",
            details={"reference": reference},
        )

    def rate_limit_exceeded(self, ip: str, path: str, limit: str):
        self.log_event(
            event_type="rate_limit_exceeded",
            severity="medium",
            details={"limit": limit},
            ip=ip,
            path=path,
        )


security_logger = SecurityLogger()
