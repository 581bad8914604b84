"""Forced-logout notification fan-out."""

import logging
import threading
from typing import Callable

from storefront.auth.interfaces import SessionObserver

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class SessionEvents:
    """Registry of forced-logout listeners.

    The notification carries no payload beyond "the session ended".
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: SessionObserver | Listener) -> Callable[[], None]:
        """Register *listener* and return a function that unregisters it.

        Args:
            listener: A :class:`SessionObserver` or a zero-argument callable.

        Returns:
            A callable that removes the listener again.  Calling it more than
            once is harmless.
        """
        if isinstance(listener, SessionObserver):
            listener = listener.on_forced_logout
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify_forced_logout(self) -> None:
        """Deliver the forced-logout notification to every listener.

        A listener that raises is logged and skipped; the others still run.
        """
        with self._lock:
            listeners = list(self._listeners)
        logger.warning("Session ended; notifying %d listener(s).", len(listeners))
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Forced-logout listener %r failed.", listener)
