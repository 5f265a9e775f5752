"""Snapshot documents: collection from the database and canonical encoding.

A SnapshotDocument is the logical payload of a backup: the schema version
plus every row of every registered table. Its byte encoding is compact,
key-ordered-by-registry UTF-8 JSON, so an unchanged database always
encodes to the same bytes.
"""

import json
import logging
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..storage.registry import SCHEMA_VERSION, get_table_spec, is_registered
from .cancellation import check_cancelled
from .errors import CollectionError, CorruptionError, UnsupportedVersionError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

# bool is an int subclass but not a column value.
_SCALAR_TYPES = (str, int, float)


def _is_valid_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, _SCALAR_TYPES)


@dataclass
class SnapshotDocument:
    """Full logical content of the database at one point in time."""

    schema_version: int
    tables: Dict[str, List[Row]] = field(default_factory=dict)
    app_version: str = ""

    @property
    def table_counts(self) -> Dict[str, int]:
        return {name: len(rows) for name, rows in self.tables.items()}

    @property
    def row_count(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "app_version": self.app_version,
            "tables": self.tables,
        }


def encode_document(document: SnapshotDocument) -> bytes:
    """Serialize a document to its canonical byte form."""
    return json.dumps(
        document.to_dict(),
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    ).encode("utf-8")


def decode_document(data: bytes, max_schema_version: Optional[int] = None) -> SnapshotDocument:
    """Parse and structurally validate a decrypted, decompressed document.

    When ``max_schema_version`` is given, the version is checked before the
    tables are matched against the registry: a newer snapshot may carry
    tables or columns this build has never heard of.

    Raises:
        UnsupportedVersionError: schema_version exceeds ``max_schema_version``.
        CorruptionError: Not valid JSON, wrong shape, unregistered table or
            column, or a value outside {null, text, integer, real}.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptionError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise CorruptionError("Snapshot root must be an object.")

    schema_version = payload.get("schema_version")
    if isinstance(schema_version, bool) or not isinstance(schema_version, int) or schema_version < 0:
        raise CorruptionError("Snapshot is missing a valid schema_version.")
    if max_schema_version is not None and schema_version > max_schema_version:
        raise UnsupportedVersionError(schema_version, max_schema_version)

    app_version = payload.get("app_version", "")
    if not isinstance(app_version, str):
        raise CorruptionError("Snapshot app_version must be text.")

    raw_tables = payload.get("tables")
    if not isinstance(raw_tables, dict):
        raise CorruptionError("Snapshot is missing its tables mapping.")

    tables: Dict[str, List[Row]] = {}
    for name, rows in raw_tables.items():
        if not is_registered(name):
            raise CorruptionError(f"Snapshot contains unregistered table: {name}")
        if not isinstance(rows, list):
            raise CorruptionError(f"Rows for {name} must be a list.")
        columns = set(get_table_spec(name).columns)
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise CorruptionError(f"Row {index} of {name} is not an object.")
            unknown = set(row) - columns
            if unknown:
                raise CorruptionError(
                    f"Row {index} of {name} has unknown column(s): {', '.join(sorted(unknown))}"
                )
            for column, value in row.items():
                if not _is_valid_value(value):
                    raise CorruptionError(
                        f"Row {index} of {name} has an unsupported value in {column}."
                    )
        tables[name] = rows

    return SnapshotDocument(
        schema_version=schema_version, tables=tables, app_version=app_version
    )


class TableSnapshotCollector:
    """Reads every registered table into a SnapshotDocument.

    Args:
        schema_version: Version stamped on collected documents.
        app_version: Application version recorded for diagnostics.
    """

    def __init__(self, schema_version: int = SCHEMA_VERSION, app_version: str = ""):
        self.schema_version = schema_version
        self.app_version = app_version

    def collect(self, db, cancel_token=None) -> SnapshotDocument:
        """Read all rows of all registered tables in one read transaction.

        Raises:
            CollectionError: Any table read failed or held an unsupported value.
            BackupCancelled: ``cancel_token`` was cancelled between tables.
        """
        tables: Dict[str, List[Row]] = {}
        try:
            with db.read_snapshot():
                for table in db.list_registered_tables():
                    check_cancelled(cancel_token)
                    rows = db.read_all_rows(table)
                    self._check_values(table, rows)
                    tables[table] = rows
                    logger.debug("Collected %d rows from %s", len(rows), table)
        except sqlite3.Error as e:
            raise CollectionError(f"Failed to read table data: {e}") from e

        return SnapshotDocument(
            schema_version=self.schema_version,
            tables=tables,
            app_version=self.app_version,
        )

    @staticmethod
    def _check_values(table: str, rows: List[Row]) -> None:
        for row in rows:
            for column, value in row.items():
                if not _is_valid_value(value):
                    raise CollectionError(
                        f"Unsupported value type {type(value).__name__} in {table}.{column}"
                    )
