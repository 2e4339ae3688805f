"""
Cooperative cancellation.

A token is handed to a long-running job and polled at safe boundaries
(between dates, between models). Cancelling never interrupts work that
has already started.
"""

import threading
from datetime import UTC, datetime


class CancellationToken:
    """Thread-safe one-shot cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._requested_at: datetime | None = None
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def requested_at(self) -> datetime | None:
        return self._requested_at

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "user") -> bool:
        """
        Request cancellation.

        Returns:
            True if this call set the flag, False if it was already set
        """
        if self._event.is_set():
            return False
        self._requested_at = datetime.now(UTC)
        self._reason = reason
        self._event.set()
        return True
