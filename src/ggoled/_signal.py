"""Graceful shutdown on SIGINT/SIGTERM for long-running commands."""

import signal
import sys
import threading
from collections.abc import Generator
from contextlib import contextmanager


class ShutdownFlag:
    """Set once shutdown has been requested.

    Long-running loops check ``running`` and sleep with ``wait()`` so that a
    signal interrupts the sleep instead of waiting it out.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def running(self) -> bool:
        return not self._event.is_set()

    def request(self) -> None:
        """Ask the loop to stop."""
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds.

        Returns:
            True if shutdown was requested.
        """
        return self._event.wait(timeout)


@contextmanager
def shutdown_guard() -> Generator[ShutdownFlag]:
    """Route SIGINT (and SIGTERM outside Windows) to a ShutdownFlag.

    Previous handlers are restored on exit.

    Example:
        with shutdown_guard() as flag:
            while flag.running:
                redraw()
                flag.wait(1.0)
    """
    flag = ShutdownFlag()

    def handler(signum: int, frame: object) -> None:
        flag.request()

    old_sigint = signal.signal(signal.SIGINT, handler)
    old_sigterm = None
    if sys.platform != "win32":
        old_sigterm = signal.signal(signal.SIGTERM, handler)

    try:
        yield flag
    finally:
        signal.signal(signal.SIGINT, old_sigint)
        if old_sigterm is not None:
            signal.signal(signal.SIGTERM, old_sigterm)
