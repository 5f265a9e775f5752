"""Backup API routes: export, import and inspect encrypted backups.

Routes are plain ``def`` so FastAPI runs them in its threadpool; key
derivation and restore never block the event loop.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..backup.backup_manager import BackupManager, default_backup_filename
from ..backup.errors import (
    AuthenticationError,
    BackupError,
    BusyError,
    FormatError,
    UnsupportedVersionError,
    ValidationError,
)
from ..core.config import BackupSettings
from ..storage.database import HRDatabase
from .security import require_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backups", tags=["backups"])

# ── Singleton ────────────────────────────────────────────────────────

_backup_manager: Optional[BackupManager] = None


def get_backup_manager() -> BackupManager:
    """Lazy singleton, created on first use from the environment settings."""
    global _backup_manager
    if _backup_manager is None:
        settings = BackupSettings.from_env()
        _backup_manager = BackupManager(HRDatabase(settings.db_path), settings)
    return _backup_manager


def set_backup_manager(manager: Optional[BackupManager]) -> None:
    """Install the manager used by the routes (CLI `serve`, tests)."""
    global _backup_manager
    _backup_manager = manager


# ── Error mapping ────────────────────────────────────────────────────

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (FormatError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedVersionError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (BusyError, status.HTTP_409_CONFLICT),
)


def status_for_error(error: BackupError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def backup_error_handler(request: Request, exc: BackupError) -> JSONResponse:
    """Render a BackupError as ``{"detail": message, "error": code}``."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("Backup request %s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": exc.code},
    )


# ── Pydantic Models ──────────────────────────────────────────────────


class ExportBackupRequest(BaseModel):
    destination_path: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ImportBackupRequest(BaseModel):
    source_path: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# ── Routes ───────────────────────────────────────────────────────────


@router.post("/export")
def export_backup(
    body: ExportBackupRequest,
    _session: None = Depends(require_session),
):
    """Write an encrypted backup of all HR data to ``destination_path``."""
    summary = get_backup_manager().export_backup(body.destination_path, body.password)
    return summary.to_dict()


@router.post("/import")
def import_backup(
    body: ImportBackupRequest,
    _session: None = Depends(require_session),
):
    """Replace all HR data with the content of an encrypted backup."""
    summary = get_backup_manager().import_backup(body.source_path, body.password)
    return summary.to_dict()


@router.post("/inspect")
def inspect_backup(
    body: ImportBackupRequest,
    _session: None = Depends(require_session),
):
    """Decrypt a backup and report its metadata without restoring it."""
    info = get_backup_manager().inspect_backup(body.source_path, body.password)
    return info.to_dict()


@router.get("/filename")
def suggested_filename(
    _session: None = Depends(require_session),
):
    """Suggested filename for a new backup."""
    return {"filename": default_backup_filename()}
