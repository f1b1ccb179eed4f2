import asyncio
import logging
import ssl
from typing import List, Optional, Tuple

from . import config
from . import messages as m
from .framing import Message, read_message, write_message

"""
client.py — a small asyncio client for the relay.

Typical usage:
    client = RelayClient("127.0.0.1", 9000)
    await client.connect()
    me, roster = await client.join("Ana")
    await client.send_text("2 - Beto", "hola")
    msg = await client.receive()
    await client.leave()

`peers` mirrors who is online, kept current from the presence broadcasts
that pass through receive().
"""

logger = logging.getLogger(__name__)


class RelayClient:
    def __init__(
        self,
        host: str,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        max_frame_size: int = config.MAX_FRAME_SIZE,
    ) -> None:
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self.max_frame_size = max_frame_size
        self.identifier: Optional[str] = None
        self.peers: List[str] = []
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

    async def connect(self) -> None:
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port, ssl=self.ssl_context
        )

    async def send(self, message: Message) -> None:
        """Write a raw frame; no validation, handy for poking the relay."""
        await write_message(self.writer, message, self.max_frame_size)

    async def receive(self) -> Optional[Message]:
        """Next frame from the relay, or None once the relay closed the stream."""
        message = await read_message(self.reader, self.max_frame_size)
        if message is not None:
            self._track_presence(message)
        return message

    async def join(self, display_name: str) -> Tuple[str, List[str]]:
        """
        Ask to join and wait for CONEXION_ACEPTADA.

        Returns the assigned identifier and the roster of clients that were
        already online.
        """
        await self.send(m.connection_request(display_name))
        while True:
            message = await self.receive()
            if message is None:
                raise ConnectionError("Relay closed the connection before accepting us")
            if message[0] == m.CONNECTION_ACCEPTED:
                return self.identifier, list(self.peers)

    async def send_text(self, recipient: str, text: str) -> None:
        if self.identifier is None:
            raise RuntimeError("join() first")
        await self.send(m.direct_message(self.identifier, recipient, text))

    async def leave(self) -> None:
        """Request disconnection and drain until the relay hangs up."""
        await self.send(m.disconnect_request())
        try:
            while await self.receive() is not None:
                pass
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        await self.close()

    async def close(self) -> None:
        if self.writer is None:
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as exc:
            logger.debug("Error while closing client stream: %s", exc)
        self.writer = None

    def _track_presence(self, message: Message) -> None:
        tag = message[0]
        if tag == m.CONNECTION_ACCEPTED:
            self.identifier = message[1]
            self.peers = list(message[2:])
        elif tag == m.NEW_USER_CONNECTED and len(message) > 1:
            if message[1] not in self.peers:
                self.peers.append(message[1])
        elif tag == m.USER_DISCONNECTED and len(message) > 1:
            if message[1] in self.peers:
                self.peers.remove(message[1])
