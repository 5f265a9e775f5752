"""HR database handle used by the backup engine.

Wraps a single SQLite connection opened via core.db.connect() in autocommit
mode so transactions are explicit. The backup engine receives this handle
as an argument; there is no module-level database global.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from itertools import groupby
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from ..core.db import connect as db_connect
from .registry import get_table_spec, list_registered_tables

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class HRDatabase:
    """SQLite persistence for the registered HR tables.

    Args:
        db_path: Path to the SQLite file, or ":memory:".
        initialize: Create any missing registered tables on open.
    """

    def __init__(self, db_path: Union[str, Path], initialize: bool = True):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = db_connect(
            self.db_path, row_factory=True, check_same_thread=False, autocommit=True
        )
        # One connection is shared with background workers; serialize use.
        self._lock = threading.RLock()
        if initialize:
            self.initialize_schema()

    @property
    def identity(self) -> str:
        """Stable name for this database, used by the busy guard."""
        if self.db_path == ":memory:":
            return f":memory:{id(self)}"
        return str(Path(self.db_path).resolve())

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    # ── Schema ──────────────────────────────────────────────────────

    def initialize_schema(self) -> None:
        """Create every registered table that does not exist yet."""
        with self._lock:
            for table in list_registered_tables():
                self.ensure_table(table)

    def ensure_table(self, table: str) -> None:
        """Create ``table`` (and its indexes) from the registry DDL if missing.

        executescript() commits any pending transaction first, so this must
        not be called while one is open.

        Raises:
            RuntimeError: A transaction is open on this handle.
        """
        spec = get_table_spec(table)
        with self._lock:
            if self._conn.in_transaction:
                raise RuntimeError("Cannot create tables inside an open transaction.")
            self._conn.executescript(spec.ddl)

    def table_exists(self, table: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (table,),
            ).fetchone()
        return row is not None

    # ── Reads ───────────────────────────────────────────────────────

    def list_registered_tables(self) -> List[str]:
        return list_registered_tables()

    def read_all_rows(self, table: str) -> List[Row]:
        """Return every row of ``table`` as a dict in registry column order.

        Rows are ordered by primary key so repeated reads of unchanged data
        are identical.
        """
        spec = get_table_spec(table)
        columns = ", ".join(spec.columns)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {columns} FROM {spec.name} ORDER BY {spec.primary_key}"  # noqa: S608
            ).fetchall()
        return [{col: row[col] for col in spec.columns} for row in rows]

    def count_rows(self, table: str) -> int:
        spec = get_table_spec(table)
        with self._lock:
            (count,) = self._conn.execute(
                f"SELECT COUNT(*) FROM {spec.name}"  # noqa: S608
            ).fetchone()
        return count

    @contextmanager
    def read_snapshot(self) -> Iterator["HRDatabase"]:
        """Hold one read transaction so all tables are read at one point in time."""
        with self._lock:
            self._conn.execute("BEGIN DEFERRED")
            try:
                yield self
            finally:
                self._conn.execute("COMMIT")

    # ── Writes ──────────────────────────────────────────────────────

    def begin_transaction(self) -> None:
        """Start a write transaction, taking the write lock immediately."""
        self._lock.acquire()
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except Exception:
            self._lock.release()
            raise

    def commit(self) -> None:
        """Commit; a failed COMMIT is rolled back before the error propagates."""
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Iterator["HRDatabase"]:
        """Commit on success, roll back on any exception."""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    def clear_table(self, table: str) -> None:
        spec = get_table_spec(table)
        with self._lock:
            self._conn.execute(f"DELETE FROM {spec.name}")  # noqa: S608

    def bulk_insert(self, table: str, rows: Iterable[Row]) -> int:
        """Insert ``rows`` into ``table`` and return how many were written.

        Columns absent from a row fall back to their table defaults.
        Consecutive rows with the same column set share one executemany().

        Raises:
            ValueError: A row names a column the registry does not know.
            sqlite3.Error: Constraint violations and other database errors.
        """
        spec = get_table_spec(table)
        known = set(spec.columns)
        prepared = []
        for row in rows:
            unknown = set(row) - known
            if unknown:
                raise ValueError(
                    f"Unknown column(s) for {spec.name}: {', '.join(sorted(unknown))}"
                )
            cols = tuple(c for c in spec.columns if c in row)
            prepared.append((cols, tuple(row[c] for c in cols)))

        written = 0
        with self._lock:
            for cols, group in groupby(prepared, key=lambda item: item[0]):
                values = [params for _, params in group]
                if cols:
                    placeholders = ", ".join("?" for _ in cols)
                    sql = (
                        f"INSERT INTO {spec.name} ({', '.join(cols)}) "  # noqa: S608
                        f"VALUES ({placeholders})"
                    )
                    self._conn.executemany(sql, values)
                else:
                    for _ in values:
                        self._conn.execute(f"INSERT INTO {spec.name} DEFAULT VALUES")  # noqa: S608
                written += len(values)
        return written

    # ── Lifecycle ───────────────────────────────────────────────────

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "HRDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None
