"""
Cancellation signal shared between the host and an in-flight generation.
"""

import threading
from typing import Optional

from genbridge.core.error_handler import GenerationCancelledError


class CancellationToken:
    """
    A one-shot cancellation flag that can also be waited on.

    The graph-executor poll loop sleeps with wait(), so cancel() from another
    thread wakes it immediately instead of after the poll interval.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Generation cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float]) -> bool:
        """
        Sleep for up to ``timeout`` seconds.

        Returns:
            bool: True if the token was cancelled before or during the wait
        """
        if timeout is None or timeout <= 0:
            return self._event.is_set()
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            GenerationCancelledError: If the token has been cancelled
        """
        if self._event.is_set():
            raise GenerationCancelledError(self.reason or "Generation cancelled")
