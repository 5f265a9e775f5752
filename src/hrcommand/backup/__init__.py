"""HR Command Center - encrypted backup and restore."""

from .backup_crypto import BackupCrypto, KdfParams, KeyDeriver
from .backup_manager import BackupInfo, BackupManager, BackupSummary, default_backup_filename
from .cancellation import CancelToken
from .errors import (
    AuthenticationError,
    BackupCancelled,
    BackupError,
    BusyError,
    CollectionError,
    CompressionError,
    CorruptionError,
    FormatError,
    IoError,
    KeyDerivationError,
    RestoreError,
    UnsupportedVersionError,
    ValidationError,
)
from .restore import RestoreEngine, RestoreSummary

__all__ = [
    "BackupCrypto",
    "KdfParams",
    "KeyDeriver",
    "BackupManager",
    "BackupSummary",
    "BackupInfo",
    "default_backup_filename",
    "CancelToken",
    "RestoreEngine",
    "RestoreSummary",
    # Errors
    "BackupError",
    "ValidationError",
    "IoError",
    "CollectionError",
    "CompressionError",
    "CorruptionError",
    "KeyDerivationError",
    "AuthenticationError",
    "FormatError",
    "UnsupportedVersionError",
    "RestoreError",
    "BusyError",
    "BackupCancelled",
]
