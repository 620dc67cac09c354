"""Cooperative cancellation for long-running deployment phases."""

from __future__ import annotations

import threading

from bluegreen.domain.exceptions import DeploymentCancelled


class CancellationToken:
    """Set once by an operator abort, observed by every waiting phase.

    ``wait`` replaces ``time.sleep`` inside phases so an abort interrupts a
    startup delay, a health retry backoff or a monitoring interval at once.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by operator") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return ``True`` if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def raise_if_cancelled(self, phase: str = "") -> None:
        if self._event.is_set():
            raise DeploymentCancelled(
                f"Deployment cancelled during {phase or 'run'}: {self.reason}",
                phase=phase,
            )
