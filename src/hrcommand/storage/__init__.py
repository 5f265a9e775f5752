"""HR Command Center - SQLite storage for the registered HR tables."""

from .database import HRDatabase
from .registry import SCHEMA_VERSION, RegisteredTable, get_table_spec, list_registered_tables

__all__ = [
    "HRDatabase",
    "SCHEMA_VERSION",
    "RegisteredTable",
    "get_table_spec",
    "list_registered_tables",
]
