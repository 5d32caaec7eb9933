"""
Connectivity signal - tells the event log whether the remote sink is reachable.

The event log only reads ``is_online()`` and subscribes to transitions; what
"online" means (a manual switch, a health check, an OS hook) is up to the
implementation.

Contract:
  - Subscribers are called with the new state, only when the state changes
  - A failing subscriber never stops the others from being notified
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivitySignal(ABC):
    """Interface for an online/offline signal."""

    @abstractmethod
    def is_online(self) -> bool: ...

    @abstractmethod
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        ...


class ManualConnectivity(ConnectivitySignal):
    """Connectivity driven explicitly through :meth:`set_online`."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        with self._lock:
            if online == self._online:
                return
            self._online = online
            listeners = list(self._listeners)
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in listeners:
            try:
                listener(online)
            except Exception as exc:  # noqa: BLE001
                logger.error("Connectivity listener %r failed: %s", listener, exc)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
