"""
editsync - Connectivity State

Tracks whether the network is believed reachable. Platform hooks (or the
CLI) push changes through set_online(); ConnectivityProbe offers a polled
HTTP reachability check for hosts without a change notification.
"""

import logging
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Listener = Callable[[bool, bool], None]


class ConnectivityState:
    """Last known reachability plus change listeners (previous, current)."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[Listener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record a connectivity notification, informing listeners on change."""
        previous = self._online
        self._online = online
        if previous == online:
            return
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for listener in list(self._listeners):
            listener(previous, online)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class ConnectivityProbe:
    """Polls an HTTP endpoint; any response at all means the network is up."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def check(self) -> bool:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            ) as client:
                await client.head(self.url)
            return True
        except httpx.RequestError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            return False
