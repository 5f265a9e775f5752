# HR Command Center - Central SQLite Connection Helper
#
# Every HR Command Center SQLite handle should be opened with `connect()`
# from this module instead of raw `sqlite3.connect()`. This ensures:
#
#   - WAL journal mode (readers never see a half-applied restore)
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - foreign_keys enforcement on every connection
#
# Backup/restore code opens its handle with autocommit=True so that it can
# issue BEGIN IMMEDIATE / COMMIT / ROLLBACK itself.

import sqlite3
from pathlib import Path
from typing import Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
    autocommit: bool = False,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file (or ":memory:").
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        check_same_thread: Passed to sqlite3.connect().
        autocommit: If True, disable the driver's implicit transactions
            (isolation_level=None) so the caller controls BEGIN/COMMIT.

    Returns:
        sqlite3.Connection with WAL mode, busy_timeout, and foreign_keys.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    if autocommit:
        conn.isolation_level = None
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
