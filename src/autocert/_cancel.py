"""Cancellable waits.

Callers pass a ``threading.Event`` as their cancellation token; setting it
aborts any wait in progress.
"""

import threading
import time

from autocert.exceptions import OperationCancelled


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("Operation cancelled")


def sleep(seconds: float, cancel: threading.Event | None = None) -> None:
    """Sleep for ``seconds``, returning early with OperationCancelled if ``cancel`` is set."""
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise OperationCancelled("Operation cancelled")
