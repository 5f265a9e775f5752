"""Closed registry of the tables covered by backup and restore.

The registry is the single source of truth for which tables a snapshot
contains, the column order of their rows and the order they are restored
in. It is never derived by reflecting on the live database, so the
snapshot format stays stable and auditable.

Registry order is parent -> child: every table appears after the tables
its foreign keys reference. Restore inserts in this order and clears in
reverse.

Bump SCHEMA_VERSION whenever a table or column is added, removed or
changes meaning.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

SCHEMA_VERSION = 1


class RegisteredTable(str, Enum):
    """Tables included in every snapshot, in FK-safe (parent first) order."""

    COMPANY = "company"
    SETTINGS = "settings"
    REVIEW_CYCLES = "review_cycles"
    EMPLOYEES = "employees"
    PERFORMANCE_RATINGS = "performance_ratings"
    PERFORMANCE_REVIEWS = "performance_reviews"
    ENPS_RESPONSES = "enps_responses"
    CONVERSATIONS = "conversations"
    AUDIT_LOG = "audit_log"


@dataclass(frozen=True)
class TableSpec:
    name: str
    primary_key: str
    columns: Tuple[str, ...]
    ddl: str


_SPECS: Dict[RegisteredTable, TableSpec] = {
    RegisteredTable.COMPANY: TableSpec(
        name="company",
        primary_key="id",
        columns=("id", "name", "state", "industry", "created_at"),
        ddl="""
            CREATE TABLE IF NOT EXISTS company (
                id TEXT PRIMARY KEY DEFAULT 'default',
                name TEXT NOT NULL,
                state TEXT NOT NULL,
                industry TEXT,
                created_at TEXT DEFAULT (datetime('now'))
            );
        """,
    ),
    RegisteredTable.SETTINGS: TableSpec(
        name="settings",
        primary_key="key",
        columns=("key", "value", "updated_at"),
        ddl="""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT DEFAULT (datetime('now'))
            );
        """,
    ),
    RegisteredTable.REVIEW_CYCLES: TableSpec(
        name="review_cycles",
        primary_key="id",
        columns=("id", "name", "cycle_type", "start_date", "end_date", "status", "created_at"),
        ddl="""
            CREATE TABLE IF NOT EXISTS review_cycles (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                cycle_type TEXT NOT NULL CHECK (cycle_type IN ('annual', 'semi-annual', 'quarterly')),
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                status TEXT DEFAULT 'active' CHECK (status IN ('active', 'closed')),
                created_at TEXT DEFAULT (datetime('now'))
            );
            CREATE INDEX IF NOT EXISTS idx_review_cycles_dates ON review_cycles(start_date, end_date);
        """,
    ),
    RegisteredTable.EMPLOYEES: TableSpec(
        name="employees",
        primary_key="id",
        columns=(
            "id", "email", "full_name", "department", "job_title", "manager_id",
            "hire_date", "work_state", "status", "extra_fields", "created_at",
            "updated_at", "date_of_birth", "gender", "ethnicity",
            "termination_date", "termination_reason",
        ),
        ddl="""
            CREATE TABLE IF NOT EXISTS employees (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                full_name TEXT NOT NULL,
                department TEXT,
                job_title TEXT,
                manager_id TEXT,
                hire_date TEXT,
                work_state TEXT,
                status TEXT DEFAULT 'active' CHECK (status IN ('active', 'terminated', 'leave')),
                extra_fields TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                updated_at TEXT DEFAULT (datetime('now')),
                date_of_birth TEXT,
                gender TEXT,
                ethnicity TEXT,
                termination_date TEXT,
                termination_reason TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_employees_department ON employees(department);
            CREATE INDEX IF NOT EXISTS idx_employees_status ON employees(status);
        """,
    ),
    RegisteredTable.PERFORMANCE_RATINGS: TableSpec(
        name="performance_ratings",
        primary_key="id",
        columns=(
            "id", "employee_id", "review_cycle_id", "overall_rating", "goals_rating",
            "competencies_rating", "reviewer_id", "rating_date", "created_at", "updated_at",
        ),
        ddl="""
            CREATE TABLE IF NOT EXISTS performance_ratings (
                id TEXT PRIMARY KEY,
                employee_id TEXT NOT NULL,
                review_cycle_id TEXT NOT NULL,
                overall_rating REAL NOT NULL CHECK (overall_rating >= 1.0 AND overall_rating <= 5.0),
                goals_rating REAL CHECK (goals_rating IS NULL OR (goals_rating >= 1.0 AND goals_rating <= 5.0)),
                competencies_rating REAL CHECK (competencies_rating IS NULL OR (competencies_rating >= 1.0 AND competencies_rating <= 5.0)),
                reviewer_id TEXT,
                rating_date TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                updated_at TEXT DEFAULT (datetime('now')),
                UNIQUE(employee_id, review_cycle_id),
                FOREIGN KEY (employee_id) REFERENCES employees(id) ON DELETE CASCADE,
                FOREIGN KEY (review_cycle_id) REFERENCES review_cycles(id) ON DELETE CASCADE,
                FOREIGN KEY (reviewer_id) REFERENCES employees(id) ON DELETE SET NULL
            );
            CREATE INDEX IF NOT EXISTS idx_ratings_employee ON performance_ratings(employee_id);
        """,
    ),
    RegisteredTable.PERFORMANCE_REVIEWS: TableSpec(
        name="performance_reviews",
        primary_key="id",
        columns=(
            "id", "employee_id", "review_cycle_id", "strengths", "areas_for_improvement",
            "accomplishments", "goals_next_period", "manager_comments", "self_assessment",
            "reviewer_id", "review_date", "created_at", "updated_at",
        ),
        ddl="""
            CREATE TABLE IF NOT EXISTS performance_reviews (
                id TEXT PRIMARY KEY,
                employee_id TEXT NOT NULL,
                review_cycle_id TEXT NOT NULL,
                strengths TEXT,
                areas_for_improvement TEXT,
                accomplishments TEXT,
                goals_next_period TEXT,
                manager_comments TEXT,
                self_assessment TEXT,
                reviewer_id TEXT,
                review_date TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                updated_at TEXT DEFAULT (datetime('now')),
                UNIQUE(employee_id, review_cycle_id),
                FOREIGN KEY (employee_id) REFERENCES employees(id) ON DELETE CASCADE,
                FOREIGN KEY (review_cycle_id) REFERENCES review_cycles(id) ON DELETE CASCADE,
                FOREIGN KEY (reviewer_id) REFERENCES employees(id) ON DELETE SET NULL
            );
            CREATE INDEX IF NOT EXISTS idx_reviews_employee ON performance_reviews(employee_id);
        """,
    ),
    RegisteredTable.ENPS_RESPONSES: TableSpec(
        name="enps_responses",
        primary_key="id",
        columns=(
            "id", "employee_id", "score", "survey_date", "survey_name",
            "feedback_text", "created_at",
        ),
        ddl="""
            CREATE TABLE IF NOT EXISTS enps_responses (
                id TEXT PRIMARY KEY,
                employee_id TEXT NOT NULL,
                score INTEGER NOT NULL CHECK (score >= 0 AND score <= 10),
                survey_date TEXT NOT NULL,
                survey_name TEXT,
                feedback_text TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                FOREIGN KEY (employee_id) REFERENCES employees(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_enps_employee ON enps_responses(employee_id);
        """,
    ),
    RegisteredTable.CONVERSATIONS: TableSpec(
        name="conversations",
        primary_key="id",
        columns=("id", "title", "summary", "messages_json", "created_at", "updated_at"),
        ddl="""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT,
                summary TEXT,
                messages_json TEXT NOT NULL DEFAULT '[]',
                created_at TEXT DEFAULT (datetime('now')),
                updated_at TEXT DEFAULT (datetime('now'))
            );
            CREATE INDEX IF NOT EXISTS idx_conversations_updated ON conversations(updated_at);
        """,
    ),
    RegisteredTable.AUDIT_LOG: TableSpec(
        name="audit_log",
        primary_key="id",
        columns=(
            "id", "conversation_id", "request_redacted", "response_text",
            "context_used", "created_at",
        ),
        ddl="""
            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                conversation_id TEXT,
                request_redacted TEXT NOT NULL,
                response_text TEXT NOT NULL,
                context_used TEXT,
                created_at TEXT DEFAULT (datetime('now')),
                FOREIGN KEY (conversation_id) REFERENCES conversations(id)
            );
            CREATE INDEX IF NOT EXISTS idx_audit_log_created ON audit_log(created_at);
        """,
    ),
}


def list_registered_tables() -> List[str]:
    """Return registered table names in canonical (FK-safe) order."""
    return [table.value for table in RegisteredTable]


def get_table_spec(table: str) -> TableSpec:
    """Look up a registered table by name.

    Raises:
        KeyError: If the table is not part of the registry.
    """
    try:
        return _SPECS[RegisteredTable(table)]
    except ValueError:
        raise KeyError(f"Unregistered table: {table}") from None


def is_registered(table: str) -> bool:
    return table in RegisteredTable._value2member_map_
