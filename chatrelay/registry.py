import asyncio
import contextlib
import logging
from typing import AsyncIterator, List, Optional, TYPE_CHECKING

from . import messages as m
from .framing import Message

if TYPE_CHECKING:
    from .handler import ConnectionHandler

logger = logging.getLogger(__name__)


class ClientRegistry:
    """
    Registered connection handlers in connection order.

    Two locks:
      - _lock guards the list itself (add/remove/lookups/snapshots).
      - _transitions serializes whole join/leave sequences, announcements
        included, so every peer sees membership changes in one order.
    _transitions may be held while taking _lock, never the other way round.
    """

    def __init__(self) -> None:
        self._handlers: List["ConnectionHandler"] = []
        self._lock = asyncio.Lock()
        self._transitions = asyncio.Lock()
        self._sequence = 0

    @contextlib.asynccontextmanager
    async def transition(self) -> AsyncIterator[None]:
        """Hold for the full duration of a register or unregister sequence."""
        async with self._transitions:
            yield

    async def allocate_identifier(self, display_name: str) -> str:
        async with self._lock:
            self._sequence += 1
            return m.make_identifier(self._sequence, display_name)

    async def add(self, handler: "ConnectionHandler") -> None:
        if not handler.identifier:
            raise ValueError("Only handlers with an identifier can be registered")
        async with self._lock:
            if any(h is handler or h.writer is handler.writer for h in self._handlers):
                logger.warning("Handler for %s is already registered", handler.identifier)
                return
            self._handlers.append(handler)

    async def remove(self, handler: "ConnectionHandler") -> bool:
        """Drop a handler; returns False if it wasn't there."""
        async with self._lock:
            for i, h in enumerate(self._handlers):
                if h is handler:
                    del self._handlers[i]
                    return True
            return False

    async def list_identifiers(self) -> List[str]:
        async with self._lock:
            return [h.identifier for h in self._handlers]

    async def find(self, identifier: str) -> Optional["ConnectionHandler"]:
        async with self._lock:
            for h in self._handlers:
                if h.identifier == identifier:
                    return h
            return None

    async def handlers(self) -> List["ConnectionHandler"]:
        # Copy so callers can await while iterating.
        async with self._lock:
            return list(self._handlers)

    async def broadcast(self, message: Message, exclude: Optional["ConnectionHandler"] = None) -> int:
        """Best-effort send to every registered handler except `exclude`."""
        delivered = 0
        for handler in await self.handlers():
            if handler is exclude:
                continue
            if await handler.send(message):
                delivered += 1
        return delivered

    def __len__(self) -> int:
        return len(self._handlers)
