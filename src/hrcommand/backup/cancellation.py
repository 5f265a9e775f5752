"""Cooperative cancellation for long-running backup operations."""

import threading

from .errors import BackupCancelled


class CancelToken:
    """Thread-safe flag checked by the pipeline between stages.

    The caller (UI thread, API handler) calls cancel(); the worker running
    the export or import calls raise_if_cancelled() at safe points.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BackupCancelled("Operation cancelled.")


def check_cancelled(token) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled()
