"""Cooperative cancellation for long-running pipeline stages."""

import logging
import threading

from aqforecast.utils.error_handling import PipelineCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Thread-safe flag checked between bootstrap blocks and training epochs.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancellation requested") -> None:
        """Request cancellation of the running stage."""
        self.reason = reason
        self._event.set()
        logger.warning(f"Cancellation requested: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        """Raise PipelineCancelled if cancellation was requested."""
        if self._event.is_set():
            location = f" during {where}" if where else ""
            raise PipelineCancelled(f"Run cancelled{location}: {self.reason}")
