"""Cooperative cancellation for running jobs."""
import threading
from typing import Optional

from utils.exceptions import JobCancelledError


class CancellationToken:
    """Thread-safe flag checked by the pipeline between units of work.

    Cancelling abandons the job: the next check raises ``JobCancelledError``.
    Work already handed to ffmpeg or the speech provider runs to completion
    and its result is discarded.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelledError(f"Job {self._reason}")
