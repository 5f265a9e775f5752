# HR Command Center - Main Package
#
# Local HR data with encrypted, portable backups: every registered table
# is exported to one password-protected .hrbackup file and can be restored
# atomically on any machine.

__version__ = "0.1.0"
__author__ = "HR Command Center Team"
__description__ = "Encrypted backup and restore engine for HR Command Center"

from .core import (
    BackupSettings,
    EventSeverity,
    EventType,
    get_audit_logger,
)

__all__ = [
    "__version__",
    "BackupSettings",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
