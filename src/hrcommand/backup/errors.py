"""
Backup Engine Exception Classes
"""


class BackupError(Exception):
    """Base exception for backup and restore operations"""

    code = "backup_error"


class ValidationError(BackupError):
    """Raised for an empty/short password or an unusable path"""

    code = "validation_error"


class IoError(BackupError):
    """Raised when reading or writing the artifact file fails"""

    code = "io_error"


class CollectionError(BackupError):
    """Raised when a table cannot be read during export"""

    code = "collection_error"


class CompressionError(BackupError):
    """Raised when the snapshot cannot be compressed"""

    code = "compression_error"


class CorruptionError(BackupError):
    """Raised when authenticated data is not a valid compressed snapshot"""

    code = "corruption_error"


class KeyDerivationError(BackupError):
    """Raised when the password-based key cannot be derived (resources)"""

    code = "key_derivation_error"


class AuthenticationError(BackupError):
    """Raised when the authentication tag does not verify.

    Covers both a wrong password and a tampered or corrupted file; the two
    cannot be told apart.
    """

    code = "authentication_error"

    def __init__(self, message: str = "Incorrect password or corrupted backup file."):
        super().__init__(message)


class FormatError(BackupError):
    """Raised for an unknown magic tag or unsupported container version"""

    code = "format_error"


class UnsupportedVersionError(BackupError):
    """Raised when the snapshot schema is newer than this build supports"""

    code = "unsupported_version"

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Backup schema version {found} is newer than the supported version {supported}."
        )


class RestoreError(BackupError):
    """Raised when the restore transaction failed and was rolled back"""

    code = "restore_error"


class BusyError(BackupError):
    """Raised when another export or import is already running"""

    code = "busy"


class BackupCancelled(BackupError):
    """Raised when the caller cancelled an export or import"""

    code = "cancelled"
