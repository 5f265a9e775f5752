"""Runtime configuration for the backup engine.

Values come from ``HRCC_*`` environment variables, optionally seeded from a
``.env`` file in the working directory (python-dotenv). Anything not set
falls back to the defaults below.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

ENV_PREFIX = "HRCC_"


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from e


@dataclass
class BackupSettings:
    """Settings shared by the backup manager, CLI and API.

    Args:
        db_path: SQLite database holding the HR data.
        audit_log_dir: Directory for daily audit log files.
        kdf_time_cost: Argon2id passes for new artifacts.
        kdf_memory_cost_mib: Argon2id memory for new artifacts, in MiB.
        kdf_parallelism: Argon2id lanes for new artifacts.
        compression_level: gzip level 0-9.
        min_password_length: Shortest password accepted for export/import.
        max_workers: Background worker threads for submit_export/submit_import.
        api_host / api_port: Bind address for ``hrcommand serve``.
    """

    db_path: Path = field(default_factory=lambda: Path("data/hrcommand.db"))
    audit_log_dir: Path = field(default_factory=lambda: Path("audit_logs"))
    kdf_time_cost: int = 2
    kdf_memory_cost_mib: int = 19
    kdf_parallelism: int = 1
    compression_level: int = 6
    min_password_length: int = 8
    max_workers: int = 1
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        self.audit_log_dir = Path(self.audit_log_dir)
        if not 0 <= self.compression_level <= 9:
            raise ValueError("compression_level must be between 0 and 9")
        if self.min_password_length < 1:
            raise ValueError("min_password_length must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> "BackupSettings":
        """Build settings from the environment (after loading ``.env``)."""
        load_dotenv(dotenv_path=dotenv_path, override=False)
        defaults = cls()
        return cls(
            db_path=_env("DB_PATH", defaults.db_path, Path),
            audit_log_dir=_env("AUDIT_LOG_DIR", defaults.audit_log_dir, Path),
            kdf_time_cost=_env("KDF_TIME_COST", defaults.kdf_time_cost, int),
            kdf_memory_cost_mib=_env("KDF_MEMORY_MIB", defaults.kdf_memory_cost_mib, int),
            kdf_parallelism=_env("KDF_PARALLELISM", defaults.kdf_parallelism, int),
            compression_level=_env("COMPRESSION_LEVEL", defaults.compression_level, int),
            min_password_length=_env("MIN_PASSWORD_LENGTH", defaults.min_password_length, int),
            max_workers=_env("MAX_WORKERS", defaults.max_workers, int),
            api_host=_env("API_HOST", defaults.api_host, str),
            api_port=_env("API_PORT", defaults.api_port, int),
        )
