"""Tests for BackupManager: export/import/inspect end to end.

Covers: round trip, wrong password, tampering, salt/nonce freshness,
validation, busy guard, cancellation, inspect, background execution and
audit logging.
"""

import json
from datetime import datetime

import pytest

PASSWORD = "correct-horse"


@pytest.fixture
def manager(populated_db, fast_settings):
    from hrcommand.backup.backup_manager import BackupManager

    mgr = BackupManager(populated_db, fast_settings)
    yield mgr
    mgr.shutdown()


@pytest.fixture
def other_db(tmp_path):
    from hrcommand.storage.database import HRDatabase

    db = HRDatabase(tmp_path / "other.db")
    yield db
    db.close()


@pytest.fixture
def backup_file(manager, tmp_path):
    path = tmp_path / "today.hrbackup"
    manager.export_backup(path, PASSWORD)
    return path


def _flip(path, offset, mask=0x01):
    data = bytearray(path.read_bytes())
    data[offset] ^= mask
    path.write_bytes(bytes(data))


# ── Export / Import ─────────────────────────────────────────────────


class TestExportImport:

    def test_export_summary(self, sample_row_count, manager, tmp_path):
        dest = tmp_path / "today.hrbackup"
        summary = manager.export_backup(dest, PASSWORD)

        assert summary.table_count == 9
        assert summary.row_count == sample_row_count
        assert summary.artifact_size_bytes == dest.stat().st_size
        assert summary.path == str(dest)
        assert summary.table_counts["settings"] == 2

    def test_artifact_header(self, backup_file):
        data = backup_file.read_bytes()
        assert data[:4] == b"HRCB"
        assert data[4] == 1
        assert data[33:37] == bytes([1, 0, 1, 1])  # fast_settings KDF block
        assert b"Acme Corp" not in data

    def test_roundtrip_into_another_database(
        self, sample_row_count, populated_db, other_db, backup_file, fast_settings, db_contents
    ):
        from hrcommand.backup.backup_manager import BackupManager

        summary = BackupManager(other_db, fast_settings).import_backup(backup_file, PASSWORD)

        assert summary.tables_restored == 9
        assert summary.rows_restored == sample_row_count
        assert db_contents(other_db) == db_contents(populated_db)

    def test_import_replaces_newer_changes(self, populated_db, manager, backup_file, db_contents):
        before = db_contents(populated_db)
        with populated_db.transaction():
            populated_db.clear_table("audit_log")
            populated_db.bulk_insert("settings", [{"key": "extra", "value": "1"}])

        manager.import_backup(backup_file, PASSWORD)
        assert db_contents(populated_db) == before

    def test_wrong_password(self, populated_db, manager, backup_file, db_contents):
        from hrcommand.backup.errors import AuthenticationError

        before = db_contents(populated_db)
        with pytest.raises(AuthenticationError, match="Incorrect password"):
            manager.import_backup(backup_file, "wrong-horse")
        assert db_contents(populated_db) == before

    def test_kdf_parameters_come_from_the_artifact(
        self, other_db, backup_file, fast_settings, db_contents, populated_db
    ):
        from dataclasses import replace

        from hrcommand.backup.backup_manager import BackupManager

        stronger = replace(fast_settings, kdf_time_cost=3, kdf_memory_cost_mib=2)
        BackupManager(other_db, stronger).import_backup(backup_file, PASSWORD)
        assert db_contents(other_db) == db_contents(populated_db)

    def test_freshness(self, manager, tmp_path):
        first = tmp_path / "a.hrbackup"
        second = tmp_path / "b.hrbackup"
        manager.export_backup(first, PASSWORD)
        manager.export_backup(second, PASSWORD)

        a, b = first.read_bytes(), second.read_bytes()
        assert a[5:21] != b[5:21]    # salt
        assert a[21:33] != b[21:33]  # nonce
        assert a[37:] != b[37:]

    def test_scenario_empty_database(self, hr_db, other_db, fast_settings, tmp_path):
        from hrcommand.backup.backup_manager import BackupManager

        dest = tmp_path / "empty.hrbackup"
        summary = BackupManager(hr_db, fast_settings).export_backup(dest, PASSWORD)
        assert summary.row_count == 0

        restored = BackupManager(other_db, fast_settings).import_backup(dest, PASSWORD)
        assert restored.tables_restored == 9
        assert restored.rows_restored == 0

    def test_scenario_employees_and_enps(self, hr_db, other_db, fast_settings, tmp_path, db_contents):
        from hrcommand.backup.backup_manager import BackupManager
        from hrcommand.backup.errors import AuthenticationError

        employees = [
            {"id": f"e{i:02d}", "email": f"e{i}@acme.test", "full_name": f"Employee {i}"}
            for i in range(10)
        ]
        responses = [
            {"id": f"n{i}", "employee_id": f"e{i:02d}", "score": i, "survey_date": "2025-06-01"}
            for i in range(5)
        ]
        with hr_db.transaction():
            hr_db.bulk_insert("employees", employees)
            hr_db.bulk_insert("enps_responses", responses)

        dest = tmp_path / "scenario.hrbackup"
        BackupManager(hr_db, fast_settings).export_backup(dest, "correct-horse")

        target = BackupManager(other_db, fast_settings)
        untouched = db_contents(other_db)
        with pytest.raises(AuthenticationError):
            target.import_backup(dest, "wrong-horse")
        assert db_contents(other_db) == untouched

        summary = target.import_backup(dest, "correct-horse")
        assert summary.rows_restored == 15
        assert summary.table_counts["employees"] == 10
        assert summary.table_counts["performance_ratings"] == 0
        assert summary.table_counts["enps_responses"] == 5

    def test_newer_schema_rejected_before_restore(
        self, populated_db, backup_file, fast_settings, db_contents
    ):
        from hrcommand.backup.backup_manager import BackupManager
        from hrcommand.backup.errors import UnsupportedVersionError
        from hrcommand.backup.restore import RestoreEngine

        old_build = BackupManager(
            populated_db, fast_settings, restore_engine=RestoreEngine(max_schema_version=0)
        )
        before = db_contents(populated_db)
        with pytest.raises(UnsupportedVersionError):
            old_build.import_backup(backup_file, PASSWORD)
        assert db_contents(populated_db) == before


# ── Tampering ───────────────────────────────────────────────────────


class TestTampering:

    @pytest.mark.parametrize("offset, mask", [
        (5, 0x01),    # salt
        (20, 0x80),   # salt, last byte
        (21, 0x01),   # nonce
        (32, 0x40),   # nonce, last byte
        (33, 0x02),   # KDF time cost 1 -> 3, still in range
        (35, 0x02),   # KDF memory 1 -> 3 MiB, still in range
        (37, 0x01),   # first ciphertext byte
        (-1, 0x01),   # last tag byte
    ])
    def test_bit_flip(self, manager, backup_file, offset, mask):
        from hrcommand.backup.errors import AuthenticationError

        _flip(backup_file, offset, mask)
        with pytest.raises(AuthenticationError):
            manager.import_backup(backup_file, PASSWORD)

    @pytest.mark.parametrize("offset, mask", [
        (33, 0x80),   # time cost 1 -> 129
        (35, 0x01),   # memory 1 MiB -> 0 MiB
    ])
    def test_out_of_range_kdf_block_is_a_format_error(self, manager, backup_file, offset, mask):
        from hrcommand.backup.errors import FormatError

        _flip(backup_file, offset, mask)
        with pytest.raises(FormatError):
            manager.import_backup(backup_file, PASSWORD)

    @pytest.mark.parametrize("offset", [0, 1, 2, 3, 4])
    def test_magic_and_version_flips_are_format_errors(self, manager, backup_file, offset):
        from hrcommand.backup.errors import FormatError

        _flip(backup_file, offset)
        with pytest.raises(FormatError):
            manager.import_backup(backup_file, PASSWORD)

    def test_truncated_file(self, manager, backup_file):
        from hrcommand.backup.errors import AuthenticationError

        backup_file.write_bytes(backup_file.read_bytes()[:-10])
        with pytest.raises(AuthenticationError):
            manager.import_backup(backup_file, PASSWORD)

    def test_shorter_than_header_and_tag(self, manager, backup_file):
        from hrcommand.backup.errors import FormatError

        backup_file.write_bytes(backup_file.read_bytes()[:52])
        with pytest.raises(FormatError):
            manager.import_backup(backup_file, PASSWORD)

    def test_authenticated_garbage_is_corruption(self, manager, tmp_path, fast_kdf):
        from hrcommand.backup.artifact import ArtifactHeader
        from hrcommand.backup.backup_crypto import BackupCrypto, KeyDeriver
        from hrcommand.backup.errors import CorruptionError

        header = ArtifactHeader(
            salt=BackupCrypto.generate_salt(),
            nonce=BackupCrypto.generate_nonce(),
            kdf_params=fast_kdf,
        )
        header_bytes = header.pack()
        key = KeyDeriver.derive(PASSWORD, header.salt, fast_kdf)
        path = tmp_path / "garbage.hrbackup"
        path.write_bytes(
            header_bytes + BackupCrypto.encrypt(key, header.nonce, b"not gzip", header_bytes)
        )
        with pytest.raises(CorruptionError):
            manager.import_backup(path, PASSWORD)


# ── Schema version ──────────────────────────────────────────────────


def _write_authenticated(path, document, kdf_params):
    """Encrypt ``document`` under PASSWORD the way export does."""
    from hrcommand.backup.artifact import ArtifactHeader
    from hrcommand.backup.backup_crypto import BackupCrypto, KeyDeriver
    from hrcommand.backup.compression import Compressor

    header = ArtifactHeader(
        salt=BackupCrypto.generate_salt(),
        nonce=BackupCrypto.generate_nonce(),
        kdf_params=kdf_params,
    )
    header_bytes = header.pack()
    key = KeyDeriver.derive(PASSWORD, header.salt, kdf_params)
    payload = Compressor().compress(json.dumps(document).encode("utf-8"))
    path.write_bytes(
        header_bytes + BackupCrypto.encrypt(key, header.nonce, payload, header_bytes)
    )
    return path


NEWER_SNAPSHOTS = {
    "extra_table": {
        "schema_version": 2,
        "app_version": "9.0.0",
        "tables": {
            "settings": [{"key": "theme", "value": "light"}],
            "payroll": [{"id": "p1", "employee_id": "e1", "amount": 100}],
        },
    },
    "extra_column": {
        "schema_version": 2,
        "app_version": "9.0.0",
        "tables": {
            "settings": [{"key": "theme", "value": "light", "scope": "user"}],
        },
    },
}


class TestNewerSchema:

    @pytest.mark.parametrize("variant", sorted(NEWER_SNAPSHOTS))
    def test_import_reports_unsupported_version(
        self, variant, manager, populated_db, tmp_path, fast_kdf, db_contents
    ):
        from hrcommand.backup.errors import UnsupportedVersionError

        path = _write_authenticated(
            tmp_path / "newer.hrbackup", NEWER_SNAPSHOTS[variant], fast_kdf
        )
        before = db_contents(populated_db)

        with pytest.raises(UnsupportedVersionError) as exc_info:
            manager.import_backup(path, PASSWORD)

        assert exc_info.value.found == 2
        assert exc_info.value.supported == 1
        assert db_contents(populated_db) == before

    @pytest.mark.parametrize("variant", sorted(NEWER_SNAPSHOTS))
    def test_inspect_reports_unsupported_version(self, variant, manager, tmp_path, fast_kdf):
        from hrcommand.backup.errors import UnsupportedVersionError

        path = _write_authenticated(
            tmp_path / "newer.hrbackup", NEWER_SNAPSHOTS[variant], fast_kdf
        )
        with pytest.raises(UnsupportedVersionError):
            manager.inspect_backup(path, PASSWORD)

    def test_current_version_with_unknown_table_is_corruption(
        self, manager, tmp_path, fast_kdf
    ):
        from hrcommand.backup.errors import CorruptionError

        document = dict(NEWER_SNAPSHOTS["extra_table"], schema_version=1)
        path = _write_authenticated(tmp_path / "odd.hrbackup", document, fast_kdf)
        with pytest.raises(CorruptionError, match="payroll"):
            manager.import_backup(path, PASSWORD)


# ── Validation ──────────────────────────────────────────────────────


class TestValidation:

    @pytest.mark.parametrize("password", ["", "short"])
    def test_bad_password(self, manager, tmp_path, password):
        from hrcommand.backup.errors import ValidationError

        with pytest.raises(ValidationError):
            manager.export_backup(tmp_path / "x.hrbackup", password)
        assert not (tmp_path / "x.hrbackup").exists()

    def test_destination_is_directory(self, manager, tmp_path):
        from hrcommand.backup.errors import ValidationError

        with pytest.raises(ValidationError, match="directory"):
            manager.export_backup(tmp_path, PASSWORD)

    def test_destination_parent_missing(self, manager, tmp_path):
        from hrcommand.backup.errors import ValidationError

        with pytest.raises(ValidationError, match="does not exist"):
            manager.export_backup(tmp_path / "nope" / "x.hrbackup", PASSWORD)

    def test_source_missing(self, manager, tmp_path):
        from hrcommand.backup.errors import ValidationError

        with pytest.raises(ValidationError, match="not found"):
            manager.import_backup(tmp_path / "missing.hrbackup", PASSWORD)

    def test_source_is_directory(self, manager, tmp_path):
        from hrcommand.backup.errors import ValidationError

        with pytest.raises(ValidationError):
            manager.inspect_backup(tmp_path, PASSWORD)

    def test_minimum_length_comes_from_settings(self, populated_db, fast_settings, tmp_path):
        from dataclasses import replace

        from hrcommand.backup.backup_manager import BackupManager
        from hrcommand.backup.errors import ValidationError

        strict = BackupManager(populated_db, replace(fast_settings, min_password_length=20))
        with pytest.raises(ValidationError, match="20"):
            strict.export_backup(tmp_path / "x.hrbackup", PASSWORD)


# ── Concurrency ─────────────────────────────────────────────────────


class TestConcurrency:

    def test_busy_guard_rejects_second_operation(self, manager, populated_db, tmp_path, backup_file):
        from hrcommand.backup import backup_manager
        from hrcommand.backup.errors import BusyError

        with backup_manager._exclusive(populated_db.identity):
            with pytest.raises(BusyError):
                manager.export_backup(tmp_path / "second.hrbackup", PASSWORD)
            with pytest.raises(BusyError):
                manager.import_backup(backup_file, PASSWORD)
        assert not (tmp_path / "second.hrbackup").exists()

    def test_busy_guard_spans_managers(self, populated_db, fast_settings, tmp_path):
        from hrcommand.backup import backup_manager
        from hrcommand.backup.backup_manager import BackupManager
        from hrcommand.backup.errors import BusyError
        from hrcommand.storage.database import HRDatabase

        with HRDatabase(populated_db.db_path) as same_file:
            with backup_manager._exclusive(populated_db.identity):
                with pytest.raises(BusyError):
                    BackupManager(same_file, fast_settings).export_backup(
                        tmp_path / "x.hrbackup", PASSWORD
                    )

    def test_guard_released_after_failure(self, manager, tmp_path, backup_file):
        from hrcommand.backup.errors import AuthenticationError

        with pytest.raises(AuthenticationError):
            manager.import_backup(backup_file, "wrong-horse")
        manager.export_backup(tmp_path / "after.hrbackup", PASSWORD)

    def test_cancelled_export_leaves_no_file(self, manager, tmp_path):
        from hrcommand.backup.cancellation import CancelToken
        from hrcommand.backup.errors import BackupCancelled

        out_dir = tmp_path / "out"
        out_dir.mkdir()
        token = CancelToken()
        token.cancel()
        with pytest.raises(BackupCancelled):
            manager.export_backup(out_dir / "x.hrbackup", PASSWORD, token)
        assert list(out_dir.iterdir()) == []

    def test_cancelled_import_leaves_database_unchanged(
        self, populated_db, manager, backup_file, db_contents
    ):
        from hrcommand.backup.cancellation import CancelToken
        from hrcommand.backup.errors import BackupCancelled

        with populated_db.transaction():
            populated_db.clear_table("settings")
        before = db_contents(populated_db)

        token = CancelToken()
        token.cancel()
        with pytest.raises(BackupCancelled):
            manager.import_backup(backup_file, PASSWORD, token)
        assert db_contents(populated_db) == before

    def test_submit_export_and_import(self, sample_row_count, manager, other_db, fast_settings, tmp_path):
        from hrcommand.backup.backup_manager import BackupManager

        dest = tmp_path / "bg.hrbackup"
        summary = manager.submit_export(dest, PASSWORD).result(timeout=60)
        assert summary.row_count == sample_row_count

        target = BackupManager(other_db, fast_settings)
        try:
            restored = target.submit_import(dest, PASSWORD).result(timeout=60)
        finally:
            target.shutdown()
        assert restored.rows_restored == sample_row_count

    def test_submit_surfaces_errors(self, manager, backup_file):
        from hrcommand.backup.errors import AuthenticationError

        future = manager.submit_import(backup_file, "wrong-horse")
        with pytest.raises(AuthenticationError):
            future.result(timeout=60)


# ── Inspect ─────────────────────────────────────────────────────────


class TestInspect:

    def test_reports_metadata_without_touching_database(
        self, sample_row_count, populated_db, manager, backup_file, db_contents
    ):
        from hrcommand import __version__

        with populated_db.transaction():
            populated_db.clear_table("audit_log")
        before = db_contents(populated_db)

        info = manager.inspect_backup(backup_file, PASSWORD)

        assert info.format_version == 1
        assert info.schema_version == 1
        assert info.app_version == __version__
        assert info.row_count == sample_row_count
        assert info.table_counts["audit_log"] == 1
        assert info.kdf_params.time_cost == 1
        assert db_contents(populated_db) == before

    def test_wrong_password(self, manager, backup_file):
        from hrcommand.backup.errors import AuthenticationError

        with pytest.raises(AuthenticationError):
            manager.inspect_backup(backup_file, "wrong-horse")

    def test_to_dict_is_json_serializable(self, manager, backup_file):
        info = manager.inspect_backup(backup_file, PASSWORD)
        payload = json.loads(json.dumps(info.to_dict()))
        assert payload["kdf_params"] == {"time_cost": 1, "memory_cost_mib": 1, "parallelism": 1}


# ── Helpers & audit ─────────────────────────────────────────────────


class TestDefaultFilename:

    def test_format(self):
        from hrcommand.backup.backup_manager import default_backup_filename

        name = default_backup_filename(datetime(2026, 1, 18, 9, 30, 5))
        assert name == "hrcommand_backup_20260118_093005.hrbackup"

    def test_defaults_to_now(self):
        from hrcommand.backup.backup_manager import default_backup_filename

        name = default_backup_filename()
        assert name.startswith("hrcommand_backup_")
        assert name.endswith(".hrbackup")


class TestAuditTrail:

    def _events(self):
        from hrcommand.core.audit_log import get_audit_logger

        log_file = get_audit_logger().log_file
        if not log_file.exists():
            return []
        return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines() if line]

    def test_export_and_restore_are_audited(self, manager, backup_file):
        manager.import_backup(backup_file, PASSWORD)
        types = [e["event_type"] for e in self._events()]
        assert "backup.exported" in types
        assert "backup.restored" in types

    def test_failed_unlock_is_audited_without_secrets(self, manager, backup_file):
        from hrcommand.backup.errors import AuthenticationError

        with pytest.raises(AuthenticationError):
            manager.import_backup(backup_file, "wrong-horse")
        events = self._events()
        failed = [e for e in events if e["event_type"] == "backup.auth_failed"]
        assert len(failed) == 1
        assert failed[0]["severity"] == "investigate"
        raw = json.dumps(events)
        assert "wrong-horse" not in raw
        assert PASSWORD not in raw

    def test_audit_failure_does_not_mask_result(self, sample_row_count, manager, tmp_path, monkeypatch):
        import hrcommand.core.audit_log as audit_mod

        def broken(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(audit_mod, "log_security_event", broken)
        summary = manager.export_backup(tmp_path / "x.hrbackup", PASSWORD)
        assert summary.row_count == sample_row_count
