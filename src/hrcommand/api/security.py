# HR Command Center - Backup API Session Guard
#
# The backup routes can replace every HR table, so each request must carry
# the token handed to the local frontend when the server started. A new
# token is issued on every start and revoked on shutdown.

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Session-Token"


class SessionGuard:
    """Issues and checks the token that authorizes backup API calls."""

    def __init__(self):
        self._token: Optional[str] = None

    @property
    def issued(self) -> bool:
        return self._token is not None

    def issue(self) -> str:
        """Replace any current token with a fresh 256-bit one and return it."""
        self._token = secrets.token_urlsafe(32)
        return self._token

    def revoke(self) -> None:
        self._token = None

    def token(self) -> str:
        if self._token is None:
            raise RuntimeError("No session token has been issued.")
        return self._token

    def check(self, presented: Optional[str]) -> None:
        """Raise HTTPException unless ``presented`` is the issued token.

        503 while no token is issued (server not started), 401 otherwise.
        """
        if self._token is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Backup API is not ready: no session token issued",
            )
        if not presented:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Missing {TOKEN_HEADER} header",
            )
        if not secrets.compare_digest(presented.encode("utf-8"), self._token.encode("utf-8")):
            logger.warning("Rejected backup API request: invalid session token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid session token",
            )


session_guard = SessionGuard()


def require_session(x_session_token: Optional[str] = Header(None)) -> None:
    """Route dependency: the caller must present the issued session token."""
    session_guard.check(x_session_token)
