# HR Command Center - FastAPI Backend
#
# Local REST API over the backup engine. Binds to localhost by default;
# every backup route requires the per-process session token.

import logging

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..backup.errors import BackupError
from ..core import EventSeverity, EventType, get_audit_logger
from .backup_routes import backup_error_handler, router as backup_router
from .security import session_guard

logger = logging.getLogger(__name__)

app = FastAPI(
    title="HR Command Center API",
    description="Encrypted backup and restore of HR Command Center data",
    version=__version__,
)

app.include_router(backup_router)
app.add_exception_handler(BackupError, backup_error_handler)


@app.on_event("startup")
async def startup_event():
    """Issue the session token for this server instance."""
    session_guard.issue()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="HR Command Center API server starting (session token initialized)",
    )


@app.on_event("shutdown")
async def shutdown_event():
    from .backup_routes import _backup_manager

    if _backup_manager is not None:
        _backup_manager.shutdown(wait=False)
    session_guard.revoke()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="HR Command Center API server stopped",
    )


@app.get("/api/session")
async def get_session():
    """
    Session token for API authentication.

    Unprotected: the local frontend calls this once on load. The token is
    random, changes on every restart and the server only binds to localhost.
    """
    return {"session_token": session_guard.token()}


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": "HR Command Center API",
        "version": __version__,
        "status": "operational",
    }


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
