"""
Audit trail, request correlation and response hardening headers.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AuditLogger:
    """Operator-visible record of upload, deletion and download events."""

    def __init__(self, max_entries: int = 1000):
        self.logs: List[Dict[str, Any]] = []
        self.max_entries = max_entries

    def log_event(self, event_type: str, correlation_id: Optional[str] = None, **kwargs):
        """Log an operator-relevant event."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": correlation_id,
            **kwargs,
        }
        self.logs.append(log_entry)
        if len(self.logs) > self.max_entries:
            del self.logs[: len(self.logs) - self.max_entries]
        logger.info("Audit log: %s", log_entry)

    def get_logs(self, limit: int = 100) -> list:
        """Get recent audit logs."""
        return list(self.logs)[-limit:]

    def events(self, event_type: str) -> list:
        return [entry for entry in self.logs if entry["event_type"] == event_type]

    def clear(self) -> None:
        self.logs.clear()


class AuditService:
    """Aggregates request tracking and audit controls."""

    def __init__(self):
        self.audit_logger = AuditLogger()
        self.security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "same-origin",
            "Content-Security-Policy": "default-src 'self'",
        }

    def generate_correlation_id(self) -> str:
        """Generate a unique correlation ID for each request."""
        return secrets.token_urlsafe(16)

    def log_request(self, correlation_id: str, method: str, path: str):
        logger.info("Request %s %s [%s]", method, path, correlation_id)

    def get_security_headers(self) -> Dict[str, str]:
        """Get security headers to be added to responses."""
        return self.security_headers


# Global audit service instance
audit_service = AuditService()
