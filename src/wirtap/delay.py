"""Cancellable delay used to race page-load timeouts against load signals.

PUBLIC API:
  - CancellableDelay: Event-backed sleep that can be cut short from any thread
"""

import threading
import time


class CancellableDelay:
    """A one-shot delay that another thread can cancel.

    Waiting on a cancelled delay returns immediately. Cancellation is a normal
    completion, never an exception, and no timer thread is created.

    Attributes:
        duration: Total delay in seconds.
    """

    def __init__(self, duration: float):
        self.duration = max(0.0, duration)
        self._cancelled = threading.Event()
        self._started = time.monotonic()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def remaining(self) -> float:
        """Seconds until natural expiry, never negative."""
        return max(0.0, self.duration - (time.monotonic() - self._started))

    def cancel(self) -> None:
        """Cut the delay short. Safe to call repeatedly."""
        self._cancelled.set()

    def wait(self) -> bool:
        """Block until the delay expires or is cancelled.

        Returns:
            True if cancelled, False if the full duration elapsed.
        """
        return self._cancelled.wait(self.remaining)

    def sleep(self, seconds: float) -> bool:
        """Block for at most seconds, returning early on cancel.

        Returns:
            True if the delay was cancelled.
        """
        return self._cancelled.wait(max(0.0, seconds))


__all__ = ["CancellableDelay"]
