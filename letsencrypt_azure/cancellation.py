"""
Cancellation of a renewal run.

A single ``threading.Event`` is threaded through every I/O step of
provider resolution. Setting it abandons the remaining steps.
"""

import threading
from typing import Optional


class OperationCancelledError(Exception):
    """Raised when a renewal run is cancelled."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Operation cancelled during: {step}")


def raise_if_cancelled(cancel_event: Optional[threading.Event], step: str) -> None:
    """
    Abort the current step if cancellation was requested.

    Args:
        cancel_event: Cancellation signal of the run (None means never cancelled)
        step: Human readable name of the step being guarded

    Raises:
        OperationCancelledError: If the event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(step)
