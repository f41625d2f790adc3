"""Host capability interface: how the environment tells the core about visibility and unload."""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)


class HostEvents(ABC):
    """Notifications the core subscribes to. The session controller implements these."""

    @abstractmethod
    async def on_hidden(self) -> None:
        """The page lost visibility (one call per hidden transition)."""

    @abstractmethod
    def on_suspend_attempt(self) -> Optional[str]:
        """The page is about to unload. Returns a confirmation prompt, or None to allow it."""


class Host(ABC):
    @abstractmethod
    def subscribe(self, handler: HostEvents) -> None:
        ...

    @abstractmethod
    def unsubscribe(self, handler: HostEvents) -> None:
        ...


class SignalHost(Host):
    """Host driven by explicit signals, e.g. a browser bridge or a test harness."""

    def __init__(self):
        self._handlers: List[HostEvents] = []

    def subscribe(self, handler: HostEvents) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: HostEvents) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def hidden(self) -> None:
        for handler in list(self._handlers):
            await handler.on_hidden()

    def suspend_attempt(self) -> Optional[str]:
        prompts = [p for p in (h.on_suspend_attempt() for h in list(self._handlers)) if p]
        if prompts:
            logger.info("Unload attempt intercepted")
            return prompts[0]
        return None
