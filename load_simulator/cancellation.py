import threading


class Cancelled(Exception):
    """Raised when a pacing sleep is interrupted by shutdown."""


class CancellationToken:
    """Shared shutdown signal for every simulator task.

    Pacing sleeps go through ``sleep`` so that a shutdown wakes them up
    immediately instead of waiting out the full interval.
    """

    def __init__(self, event=None):
        # Any Event-like object works, including multiprocessing.Event for worker processes
        self._event = event if event is not None else threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, raising Cancelled if the token is set meanwhile."""
        if self._event.wait(max(0.0, seconds)):
            raise Cancelled()

    def wait(self, seconds: float) -> bool:
        """Like ``sleep`` but returns True on cancellation instead of raising."""
        return self._event.wait(max(0.0, seconds))
