# HR Command Center - Core Module
#
# Shared functionality used by the storage, backup and API layers:
# - Audit logging
# - Configuration
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
    log_security_event,
)
from .config import BackupSettings
from .db import connect

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "BackupSettings",
    # SQLite
    "connect",
]
