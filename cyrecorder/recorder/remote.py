"""Collaborators for capture agents that talk to the recorder over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Callable

from cyrecorder.recorder.navigation import NavigationDetails, NavigationSignal

logger = logging.getLogger("cyrecorder.recorder.remote")


class RemoteChannel:
    """Channel for an agent that connected over HTTP; it polls `disconnected`."""

    def __init__(self, name: str, sender_url: str = ""):
        self.name = name
        self.sender_url = sender_url
        self.disconnected = False

    async def disconnect(self) -> None:
        self.disconnected = True
        logger.info("Remote channel %s disconnected", self.name)


class PushNavigationSource:
    """Navigation source fed by signals posted to the recorder server."""

    def __init__(self) -> None:
        self._handlers: dict[NavigationSignal, list[Callable[[NavigationDetails], Any]]] = {
            signal: [] for signal in NavigationSignal
        }

    def subscribe(self, signal: NavigationSignal, handler: Callable[[NavigationDetails], Any]) -> Callable[[], None]:
        self._handlers[signal].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[signal]:
                self._handlers[signal].remove(handler)

        return _unsubscribe

    def publish(self, signal: NavigationSignal, details: NavigationDetails) -> int:
        """Deliver a signal to current subscribers; returns how many received it."""
        handlers = list(self._handlers[signal])
        for handler in handlers:
            handler(details)
        return len(handlers)
