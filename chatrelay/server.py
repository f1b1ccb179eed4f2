import asyncio
import logging
import ssl
from typing import Optional, Set

from . import config
from .handler import ConnectionHandler
from .registry import ClientRegistry

"""
server.py — the relay listener.

Accepts stream connections and runs one ConnectionHandler task per
connection, all sharing one ClientRegistry. The registry (and with it the
identifier sequence) lives exactly as long as the RelayServer instance.
"""

logger = logging.getLogger(__name__)


class RelayServer:
    """
    Listener that:
      - binds host:port (port 0 picks a free one; see .port after start()),
      - hands each accepted connection to a ConnectionHandler,
      - sets .started once the endpoint is bound.
    """

    def __init__(
        self,
        host: str = config.HOST,
        port: int = config.PORT,
        ssl_context: Optional[ssl.SSLContext] = None,
        max_frame_size: int = config.MAX_FRAME_SIZE,
        outbox_max_frames: int = config.OUTBOX_MAX_FRAMES,
        outbox_max_bytes: int = config.OUTBOX_MAX_BYTES,
        close_timeout: float = config.CLOSE_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self.max_frame_size = max_frame_size
        self.outbox_max_frames = outbox_max_frames
        self.outbox_max_bytes = outbox_max_bytes
        self.close_timeout = close_timeout
        self.registry = ClientRegistry()
        self.started = asyncio.Event()
        self._server: Optional[asyncio.AbstractServer] = None
        self._handlers: Set[ConnectionHandler] = set()
        self._tasks: Set[asyncio.Task] = set()

    async def start(self) -> None:
        """
        Bind the listening socket.

        Raises:
            OSError: the address is unavailable or the port is invalid.
        """
        self._server = await asyncio.start_server(
            self.handle_conn, self.host, self.port, ssl=self.ssl_context
        )
        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        addrs = ", ".join(str(sock.getsockname()) for sock in sockets)
        scheme = "TLS" if self.ssl_context else "TCP"
        logger.info("Relay listening on %s (%s)", addrs, scheme)
        self.started.set()

    async def serve_forever(self) -> None:
        """Bind if needed and accept connections until cancelled."""
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def handle_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Per-connection entry point; the handler contains its own failures."""
        handler = ConnectionHandler(
            reader,
            writer,
            self.registry,
            self.max_frame_size,
            outbox_max_frames=self.outbox_max_frames,
            outbox_max_bytes=self.outbox_max_bytes,
            close_timeout=self.close_timeout,
        )
        task = asyncio.current_task()
        self._handlers.add(handler)
        if task is not None:
            self._tasks.add(task)
        try:
            await handler.run()
        finally:
            self._handlers.discard(handler)
            if task is not None:
                self._tasks.discard(task)

    @property
    def connection_count(self) -> int:
        return len(self._handlers)

    async def close(self) -> None:
        """Stop accepting, drop every connection and wait for the handlers."""
        if self._server is not None:
            self._server.close()
        # Each handler hands over what is queued and hangs up; a peer that
        # stopped reading is aborted once its close timeout runs out.
        await asyncio.gather(*(h.close() for h in list(self._handlers)), return_exceptions=True)
        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()
        self.started.clear()
        logger.info("Relay stopped")
