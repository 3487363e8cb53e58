"""Cooperative cancellation shared by long-running launcher operations."""

from __future__ import annotations

import threading


class OperationCancelled(RuntimeError):
    """Unwinds a helper loop once its token has been cancelled.

    Public operations catch this internally and report a ``CANCELLED`` status
    instead of letting it escape.
    """


class CancellationToken:
    """Flag checked at explicit checkpoints between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return the flag."""

        return self._event.wait(timeout)


NEVER_CANCELLED = CancellationToken()


__all__ = ["CancellationToken", "NEVER_CANCELLED", "OperationCancelled"]
