"""SIGINT handling for the run loop."""

import logging
import signal
import threading

logger = logging.getLogger(__name__)


class SignalHandler:
    """Turns Ctrl-C into a flag the engine polls between states.

    The assistant child shares our process group and gets the SIGINT too,
    so nothing here kills it.
    """

    def __init__(self):
        self._event = threading.Event()
        self._previous = None

    def install(self) -> "SignalHandler":
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
        return self

    def restore(self) -> None:
        if self._previous is not None:
            signal.signal(signal.SIGINT, self._previous)
            self._previous = None

    def _handle(self, signum, frame) -> None:
        logger.debug("SIGINT received")
        self._event.set()

    def request_shutdown(self) -> None:
        self._event.set()

    def is_shutdown_requested(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()
