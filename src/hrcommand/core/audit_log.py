# HR Command Center - Audit Logging
#
# Append-only audit trail for data-protection events: every export,
# restore, inspection and failed unlock of a backup is recorded with a
# timestamp and host context. Passwords, keys and row contents are never
# written to the audit trail.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of audit events emitted by HR Command Center."""

    # Backup events
    BACKUP_EXPORTED = "backup.exported"
    BACKUP_RESTORED = "backup.restored"
    BACKUP_INSPECTED = "backup.inspected"
    BACKUP_FAILED = "backup.failed"
    BACKUP_AUTH_FAILED = "backup.auth_failed"
    BACKUP_CANCELLED = "backup.cancelled"

    # System events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual happened (e.g. a failed unlock)
    - ALERT: An operation failed and data may need attention
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"


class AuditLogger:
    """
    Append-only structured audit logger.

    Events are rendered as one JSON object per line by structlog and
    written to a daily ``audit_YYYY-MM-DD.log`` file in ``log_dir``.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()
        self.logger = structlog.get_logger("hrcommand.audit")

    def _setup_file_handler(self):
        """Attach a handler for today's audit file to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        audit_logger = logging.getLogger("hrcommand.audit")
        for handler in list(audit_logger.handlers):
            if getattr(handler, "_hrcommand_audit", False):
                audit_logger.removeHandler(handler)
                handler.close()

        file_handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders JSON
        file_handler._hrcommand_audit = True
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log an audit event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        self.logger.info(
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details or {},
            host_context=self._get_host_context(),
        )
        return event_id

    @staticmethod
    def _get_host_context() -> Dict[str, Any]:
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def configure_audit_logger(log_dir: Optional[Path] = None) -> AuditLogger:
    """Replace the global audit logger with one writing to ``log_dir``."""
    global _audit_logger
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging audit events.

    Usage:
        log_security_event(
            EventType.BACKUP_EXPORTED,
            EventSeverity.INFO,
            "Backup exported",
            details={"row_count": 42}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
