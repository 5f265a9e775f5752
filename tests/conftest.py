"""
Shared pytest fixtures for the HR Command Center test suite.

Autouse fixtures below isolate tests from live application data:
  - Audit logger -> temp directory (prevents test events in ./audit_logs)

Backup settings use the cheapest Argon2id parameters so key derivation
does not dominate the suite's runtime.
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test."""
    import hrcommand.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod.configure_audit_logger(tmp_path / "audit_logs")

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture
def fast_settings(tmp_path):
    """BackupSettings with minimal KDF cost, rooted in tmp_path."""
    from hrcommand.core.config import BackupSettings

    return BackupSettings(
        db_path=tmp_path / "hr.db",
        audit_log_dir=tmp_path / "audit_logs",
        kdf_time_cost=1,
        kdf_memory_cost_mib=1,
        kdf_parallelism=1,
    )


@pytest.fixture
def fast_kdf():
    from hrcommand.backup.backup_crypto import KdfParams

    return KdfParams(time_cost=1, memory_cost_mib=1, parallelism=1)


@pytest.fixture
def hr_db(tmp_path):
    """Empty HR database with every registered table created."""
    from hrcommand.storage.database import HRDatabase

    db = HRDatabase(tmp_path / "hr.db")
    yield db
    db.close()


SAMPLE_ROWS = {
    "company": [
        {"id": "default", "name": "Acme Corp", "state": "CA", "industry": "Software"},
    ],
    "settings": [
        {"key": "theme", "value": "dark"},
        {"key": "locale", "value": "en-US"},
    ],
    "review_cycles": [
        {"id": "rc1", "name": "2025 Annual", "cycle_type": "annual",
         "start_date": "2025-01-01", "end_date": "2025-12-31"},
    ],
    "employees": [
        {"id": "e1", "email": "ana@acme.test", "full_name": "Ana Núñez",
         "department": "Engineering", "job_title": "CTO"},
        {"id": "e2", "email": "bo@acme.test", "full_name": "Bo Chen",
         "department": "", "manager_id": "e1"},
        {"id": "e3", "email": "cy@acme.test", "full_name": "Cy Park",
         "department": None, "manager_id": "e1", "status": "leave"},
    ],
    "performance_ratings": [
        {"id": "pr1", "employee_id": "e2", "review_cycle_id": "rc1",
         "overall_rating": 4.5, "goals_rating": 4.0, "reviewer_id": "e1"},
    ],
    "performance_reviews": [
        {"id": "rv1", "employee_id": "e2", "review_cycle_id": "rc1",
         "strengths": "Ships reliably", "reviewer_id": "e1"},
    ],
    "enps_responses": [
        {"id": "n1", "employee_id": "e2", "score": 9, "survey_date": "2025-06-01"},
        {"id": "n2", "employee_id": "e3", "score": 6, "survey_date": "2025-06-01",
         "feedback_text": "More 1:1s 🙂"},
    ],
    "conversations": [
        {"id": "c1", "title": "Onboarding", "messages_json": "[]"},
    ],
    "audit_log": [
        {"id": "a1", "conversation_id": "c1", "request_redacted": "q",
         "response_text": "a"},
    ],
}


def _seed_sample_data(db):
    """Insert SAMPLE_ROWS, a small referentially consistent data set."""
    with db.transaction():
        for table in db.list_registered_tables():
            db.bulk_insert(table, SAMPLE_ROWS.get(table, []))
    return SAMPLE_ROWS


@pytest.fixture
def sample_row_count():
    return sum(len(rows) for rows in SAMPLE_ROWS.values())


@pytest.fixture
def seed_sample_data():
    return _seed_sample_data


@pytest.fixture
def populated_db(hr_db):
    _seed_sample_data(hr_db)
    return hr_db


@pytest.fixture
def db_contents():
    """Callable returning all rows of all registered tables, for before/after checks."""

    def contents(db):
        return {table: db.read_all_rows(table) for table in db.list_registered_tables()}

    return contents
