"""Backup manager: export, import and inspect encrypted database backups.

Each backup is a single .hrbackup file holding every registered table:

  collect rows -> canonical JSON -> gzip -> AES-256-GCM (Argon2id key)
  -> header + ciphertext written atomically to the chosen path

Import runs the same pipeline in reverse and restores inside one
transaction, so the database is either fully replaced or left untouched.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional, Set, Union

from .. import __version__
from ..core.config import BackupSettings
from .artifact import ArtifactHeader, ArtifactReader, ArtifactWriter
from .backup_crypto import BackupCrypto, KdfParams, KeyDeriver, scrub
from .cancellation import CancelToken, check_cancelled
from .compression import Compressor
from .errors import (
    AuthenticationError,
    BackupCancelled,
    BackupError,
    BusyError,
    CollectionError,
    FormatError,
    ValidationError,
)
from .restore import RestoreEngine, RestoreSummary
from .snapshot import SnapshotDocument, TableSnapshotCollector, decode_document, encode_document

logger = logging.getLogger(__name__)

BACKUP_EXTENSION = ".hrbackup"

# Databases with an export or import in flight, across all managers.
_active_databases: Set[str] = set()
_active_lock = threading.Lock()


@contextmanager
def _exclusive(identity: str) -> Iterator[None]:
    """Reject a second operation against the same database with BusyError."""
    with _active_lock:
        if identity in _active_databases:
            raise BusyError("Another backup export or import is already running.")
        _active_databases.add(identity)
    try:
        yield
    finally:
        with _active_lock:
            _active_databases.discard(identity)


def default_backup_filename(now: Optional[datetime] = None) -> str:
    """Suggested filename, e.g. hrcommand_backup_20260118_093000.hrbackup."""
    now = now or datetime.now()
    return f"hrcommand_backup_{now.strftime('%Y%m%d_%H%M%S')}{BACKUP_EXTENSION}"


@dataclass
class BackupSummary:
    """Result of a completed export."""

    table_count: int
    row_count: int
    artifact_size_bytes: int
    path: str = ""
    table_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "table_count": self.table_count,
            "row_count": self.row_count,
            "artifact_size_bytes": self.artifact_size_bytes,
            "path": self.path,
            "table_counts": dict(self.table_counts),
        }


@dataclass
class BackupInfo:
    """Metadata of an artifact, read without touching the database."""

    format_version: int
    schema_version: int
    app_version: str
    table_counts: Dict[str, int]
    kdf_params: KdfParams

    @property
    def row_count(self) -> int:
        return sum(self.table_counts.values())

    def to_dict(self) -> dict:
        return {
            "format_version": self.format_version,
            "schema_version": self.schema_version,
            "app_version": self.app_version,
            "table_counts": dict(self.table_counts),
            "row_count": self.row_count,
            "kdf_params": self.kdf_params.to_dict(),
        }


class BackupManager:
    """Orchestrates backup export, import and inspection for one database.

    Args:
        db: HRDatabase handle to export from / restore into.
        settings: BackupSettings (KDF defaults, compression, password rules).
        restore_engine: RestoreEngine; created with the current schema if None.
    """

    def __init__(
        self,
        db,
        settings: Optional[BackupSettings] = None,
        restore_engine: Optional[RestoreEngine] = None,
    ):
        self._db = db
        self._settings = settings or BackupSettings()
        try:
            self._kdf_params = KdfParams(
                time_cost=self._settings.kdf_time_cost,
                memory_cost_mib=self._settings.kdf_memory_cost_mib,
                parallelism=self._settings.kdf_parallelism,
            ).validate()
        except FormatError as e:
            raise ValueError(f"Invalid KDF settings: {e}") from e
        self._collector = TableSnapshotCollector(app_version=__version__)
        self._compressor = Compressor(self._settings.compression_level)
        self._writer = ArtifactWriter()
        self._reader = ArtifactReader()
        self._restore_engine = restore_engine or RestoreEngine()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def kdf_params(self) -> KdfParams:
        return self._kdf_params

    # ── Export ───────────────────────────────────────────────────────

    def export_backup(
        self,
        destination_path: Union[str, Path],
        password: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> BackupSummary:
        """Write an encrypted backup of every registered table.

        Raises:
            ValidationError: Bad password or destination path.
            BusyError: Another export/import is running on this database.
            CollectionError / CompressionError / KeyDerivationError / IoError:
                The export was abandoned; nothing exists at the destination.
            BackupCancelled: ``cancel_token`` was cancelled.
        """
        self._validate_password(password)
        destination = self._validate_destination(destination_path)

        with _exclusive(self._db.identity):
            try:
                summary = self._export_locked(destination, password, cancel_token)
            except BackupError as e:
                self._audit_failure("export", e)
                raise

        self._audit_log("backup.exported", "Backup exported", summary.to_dict())
        return summary

    def _export_locked(
        self, destination: Path, password: str, cancel_token: Optional[CancelToken]
    ) -> BackupSummary:
        started = time.monotonic()

        # 1. Snapshot all tables
        document = self._collector.collect(self._db, cancel_token)
        check_cancelled(cancel_token)

        # 2. Serialize + compress
        try:
            plaintext = bytearray(encode_document(document))
        except ValueError as e:
            raise CollectionError(f"Snapshot could not be serialized: {e}") from e
        try:
            compressed = bytearray(self._compressor.compress(bytes(plaintext)))
        finally:
            scrub(plaintext)
        check_cancelled(cancel_token)

        # 3. Derive key, encrypt with header as associated data
        header = ArtifactHeader(
            salt=BackupCrypto.generate_salt(),
            nonce=BackupCrypto.generate_nonce(),
            kdf_params=self._kdf_params,
        )
        header_bytes = header.pack()
        key = None
        try:
            key = KeyDeriver.derive(password, header.salt, header.kdf_params)
            ciphertext = BackupCrypto.encrypt(key, header.nonce, bytes(compressed), header_bytes)
        finally:
            scrub(key)
            scrub(compressed)
        check_cancelled(cancel_token)

        # 4. Atomic write
        size = self._writer.write(destination, header_bytes, ciphertext, cancel_token)

        logger.info(
            "Export complete: %d tables, %d rows, %d bytes in %.2fs",
            len(document.tables), document.row_count, size, time.monotonic() - started,
        )
        return BackupSummary(
            table_count=len(document.tables),
            row_count=document.row_count,
            artifact_size_bytes=size,
            path=str(destination),
            table_counts=document.table_counts,
        )

    # ── Import ───────────────────────────────────────────────────────

    def import_backup(
        self,
        source_path: Union[str, Path],
        password: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> RestoreSummary:
        """Replace the database content with the content of a backup.

        Raises:
            ValidationError: Bad password or source path.
            BusyError: Another export/import is running on this database.
            FormatError: Not a backup, or an unsupported container version.
            AuthenticationError: Wrong password or tampered file.
            CorruptionError: Authenticated payload is malformed.
            UnsupportedVersionError: Snapshot schema newer than supported.
            RestoreError: Restore failed and was rolled back.
            BackupCancelled: Cancelled before commit; nothing was changed.
        """
        self._validate_password(password)
        source = self._validate_source(source_path)

        with _exclusive(self._db.identity):
            try:
                document = self._open_artifact(source, password, cancel_token)
                check_cancelled(cancel_token)
                summary = self._restore_engine.restore(self._db, document, cancel_token)
            except BackupError as e:
                self._audit_failure("import", e)
                raise

        logger.info(
            "Import complete: %d tables, %d rows",
            summary.tables_restored, summary.rows_restored,
        )
        self._audit_log("backup.restored", "Backup restored", {
            "source": str(source),
            **summary.to_dict(),
        })
        return summary

    # ── Inspect ──────────────────────────────────────────────────────

    def inspect_backup(self, source_path: Union[str, Path], password: str) -> BackupInfo:
        """Decrypt and validate a backup without touching the database.

        Raises the same errors as import_backup() up to (and including)
        UnsupportedVersionError; never RestoreError or BusyError.
        """
        self._validate_password(password)
        source = self._validate_source(source_path)
        try:
            artifact = self._reader.read(source)
            document = self._decrypt_document(artifact, password)
            self._restore_engine.check_version(document)
        except BackupError as e:
            self._audit_failure("inspect", e)
            raise

        info = BackupInfo(
            format_version=artifact.header.format_version,
            schema_version=document.schema_version,
            app_version=document.app_version,
            table_counts=document.table_counts,
            kdf_params=artifact.header.kdf_params,
        )
        self._audit_log("backup.inspected", "Backup inspected", {
            "source": str(source),
            "row_count": info.row_count,
        })
        return info

    # ── Background execution ─────────────────────────────────────────

    def submit_export(
        self,
        destination_path: Union[str, Path],
        password: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> "Future[BackupSummary]":
        """Run export_backup() on the background worker."""
        return self._get_executor().submit(
            self.export_backup, destination_path, password, cancel_token
        )

    def submit_import(
        self,
        source_path: Union[str, Path],
        password: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> "Future[RestoreSummary]":
        """Run import_backup() on the background worker."""
        return self._get_executor().submit(
            self.import_backup, source_path, password, cancel_token
        )

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._settings.max_workers,
                    thread_name_prefix="hrcommand-backup",
                )
            return self._executor

    # ── Helpers ──────────────────────────────────────────────────────

    def _open_artifact(
        self, source: Path, password: str, cancel_token: Optional[CancelToken]
    ) -> SnapshotDocument:
        artifact = self._reader.read(source)
        check_cancelled(cancel_token)
        return self._decrypt_document(artifact, password)

    def _decrypt_document(self, artifact, password: str) -> SnapshotDocument:
        header = artifact.header
        key = KeyDeriver.derive(password, header.salt, header.kdf_params)
        try:
            compressed = BackupCrypto.decrypt(
                key, header.nonce, artifact.ciphertext, artifact.header_bytes
            )
        finally:
            scrub(key)
        plaintext = bytearray(self._compressor.decompress(compressed))
        try:
            return decode_document(
                bytes(plaintext), max_schema_version=self._restore_engine.max_schema_version
            )
        finally:
            scrub(plaintext)

    def _validate_password(self, password: str) -> None:
        if not isinstance(password, str) or not password:
            raise ValidationError("Password must not be empty.")
        minimum = self._settings.min_password_length
        if len(password) < minimum:
            raise ValidationError(f"Password must be at least {minimum} characters.")

    @staticmethod
    def _validate_destination(destination_path: Union[str, Path]) -> Path:
        if not str(destination_path).strip():
            raise ValidationError("Destination path must not be empty.")
        destination = Path(destination_path)
        if destination.is_dir():
            raise ValidationError(f"Destination is a directory: {destination}")
        if not destination.parent.is_dir():
            raise ValidationError(f"Destination folder does not exist: {destination.parent}")
        return destination

    @staticmethod
    def _validate_source(source_path: Union[str, Path]) -> Path:
        if not str(source_path).strip():
            raise ValidationError("Source path must not be empty.")
        source = Path(source_path)
        if not source.is_file():
            raise ValidationError(f"Backup file not found: {source}")
        return source

    def _audit_failure(self, operation: str, error: BackupError) -> None:
        if isinstance(error, AuthenticationError):
            event = "backup.auth_failed"
        elif isinstance(error, BackupCancelled):
            event = "backup.cancelled"
        else:
            event = "backup.failed"
        self._audit_log(event, f"Backup {operation} failed: {error.code}", {
            "operation": operation,
            "error": error.code,
        })

    @staticmethod
    def _audit_log(event_type_value: str, message: str, details: dict):
        """Best-effort audit logging; never masks the operation's outcome."""
        try:
            from ..core.audit_log import EventSeverity, EventType, log_security_event

            event_type = EventType(event_type_value)
            if event_type in (EventType.BACKUP_FAILED,):
                severity = EventSeverity.ALERT
            elif event_type in (EventType.BACKUP_AUTH_FAILED,):
                severity = EventSeverity.INVESTIGATE
            else:
                severity = EventSeverity.INFO
            log_security_event(event_type, severity, message, details=details)
        except Exception:
            logger.warning("Audit log failed: %s", message, exc_info=True)
