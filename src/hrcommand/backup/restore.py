"""Atomic restore of a snapshot document into an HR database."""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict

from ..storage.registry import SCHEMA_VERSION
from .cancellation import check_cancelled
from .errors import BackupCancelled, RestoreError, UnsupportedVersionError
from .snapshot import SnapshotDocument

logger = logging.getLogger(__name__)


@dataclass
class RestoreSummary:
    """Result of a completed restore."""

    tables_restored: int
    rows_restored: int
    table_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "tables_restored": self.tables_restored,
            "rows_restored": self.rows_restored,
            "table_counts": dict(self.table_counts),
        }


class RestoreEngine:
    """Repopulates every registered table from a snapshot in one transaction.

    Args:
        max_schema_version: Newest snapshot schema this build can restore.
    """

    def __init__(self, max_schema_version: int = SCHEMA_VERSION):
        self.max_schema_version = max_schema_version

    def check_version(self, document: SnapshotDocument) -> None:
        if document.schema_version > self.max_schema_version:
            raise UnsupportedVersionError(document.schema_version, self.max_schema_version)

    def restore(self, db, document: SnapshotDocument, cancel_token=None) -> RestoreSummary:
        """Replace the database content with ``document``.

        The schema version is checked before any transaction is opened.
        Tables are cleared child -> parent and refilled parent -> child.
        Registered tables missing from the document end up empty. Tables
        missing from the database are created before the transaction opens.

        Raises:
            UnsupportedVersionError: Snapshot schema is newer than supported.
            RestoreError: Any clear/insert failed; everything was rolled back.
            BackupCancelled: Cancelled; everything was rolled back.
        """
        self.check_version(document)
        check_cancelled(cancel_token)

        tables = db.list_registered_tables()
        counts: Dict[str, int] = {}

        try:
            db.initialize_schema()
        except sqlite3.Error as e:
            raise RestoreError(f"Could not create missing tables: {e}") from e
        try:
            db.begin_transaction()
        except sqlite3.Error as e:
            raise RestoreError(f"Could not start restore transaction: {e}") from e
        try:
            for table in reversed(tables):
                check_cancelled(cancel_token)
                db.clear_table(table)
            for table in tables:
                check_cancelled(cancel_token)
                counts[table] = db.bulk_insert(table, document.tables.get(table, []))
                logger.debug("Restored %d rows into %s", counts[table], table)
            check_cancelled(cancel_token)
        except BackupCancelled:
            db.rollback()
            logger.info("Restore cancelled; transaction rolled back")
            raise
        except (sqlite3.Error, ValueError) as e:
            db.rollback()
            logger.error("Restore failed, transaction rolled back: %s", e)
            raise RestoreError(f"Restore failed and was rolled back: {e}") from e
        except BaseException:
            db.rollback()
            raise

        try:
            db.commit()
        except sqlite3.Error as e:
            logger.error("Restore commit failed, transaction rolled back: %s", e)
            raise RestoreError(f"Could not commit restore: {e}") from e

        return RestoreSummary(
            tables_restored=len(tables),
            rows_restored=sum(counts.values()),
            table_counts=counts,
        )
