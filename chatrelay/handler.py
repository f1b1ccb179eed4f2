import asyncio
import enum
import logging
from typing import Optional

from . import config
from . import messages as m
from .framing import FrameError, MalformedFrame, Message, encode, read_message
from .registry import ClientRegistry

"""
handler.py — one client's session on the relay.

Lifecycle: UNREGISTERED → REGISTERED → CLOSED.
- UNREGISTERED only reacts to SOLICITUD_CONEXION.
- REGISTERED reacts to MENSAJE (routed verbatim) and SOLICITUD_DESCONEXION.
- CLOSED is terminal: the stream is closed once and the handler leaves the
  registry once.

Outgoing frames go through a bounded per-connection outbox drained by the
handler's own writer task, so nobody waits on another client's socket. A
client whose outbox overflows is treated as unreachable and dropped.

Malformed payloads, unknown tags and tags that don't fit the current state are
logged and skipped. End of stream, a cut-off frame or an oversized length
prefix end the session.
"""

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    CLOSED = "closed"


class ConnectionHandler:
    """Owns a reader/writer pair, the assigned identifier and the session state."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        registry: ClientRegistry,
        max_frame_size: int = config.MAX_FRAME_SIZE,
        outbox_max_frames: int = config.OUTBOX_MAX_FRAMES,
        outbox_max_bytes: int = config.OUTBOX_MAX_BYTES,
        close_timeout: float = config.CLOSE_TIMEOUT,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.max_frame_size = max_frame_size
        self.identifier: Optional[str] = None
        self.state = SessionState.UNREGISTERED
        self.running = False
        self.peername = writer.get_extra_info("peername")
        self.outbox_max_frames = outbox_max_frames
        self.outbox_max_bytes = outbox_max_bytes
        self.close_timeout = close_timeout
        # Encoded frames waiting for _write_loop; None marks the end.
        self._outbox: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._outbox_bytes = 0
        self._outbox_shut = False
        self._writer_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<ConnectionHandler {self.identifier or self.peername} {self.state.value}>"

    # -------------------------
    # Receive loop
    # -------------------------

    async def run(self) -> None:
        """Read frames until the stream ends, then clean up."""
        self.running = True
        self._writer_task = asyncio.create_task(self._write_loop())
        logger.info("Connection from %s", self.peername)
        try:
            while self.state is not SessionState.CLOSED:
                try:
                    message = await read_message(self.reader, self.max_frame_size)
                except MalformedFrame as exc:
                    logger.warning("Ignoring malformed frame from %s: %s", self, exc)
                    continue
                if message is None:
                    logger.info("%s closed the connection", self)
                    break
                await self.dispatch(message)
        except asyncio.IncompleteReadError:
            logger.info("%s went away mid-frame", self)
        except FrameError as exc:
            logger.warning("Dropping %s: %s", self, exc)
        except OSError as exc:
            logger.info("Connection error on %s: %s", self, exc)
        except Exception:
            logger.exception("Unexpected error on %s", self)
        finally:
            await self.close()

    async def dispatch(self, message: Message) -> None:
        """Apply one decoded frame according to the current state."""
        try:
            tag = m.validate(message)
        except m.ProtocolError as exc:
            logger.warning("Ignoring frame from %s: %s", self, exc)
            return

        if self.state is SessionState.UNREGISTERED:
            if tag == m.CONNECTION_REQUEST:
                await self.register(message[1])
            else:
                logger.warning("Ignoring %s from %s before registration", tag, self)
        elif self.state is SessionState.REGISTERED:
            if tag == m.MESSAGE:
                await self.route(message)
            elif tag == m.DISCONNECT_REQUEST:
                await self.close()
            else:
                logger.warning("Ignoring %s from registered client %s", tag, self)

    # -------------------------
    # Protocol actions
    # -------------------------

    async def register(self, display_name: str) -> str:
        """
        Give this connection an identifier and announce it.

        The joiner's CONEXION_ACEPTADA (identifier + roster of everyone already
        online) goes out before anyone else hears about it, and the handler
        only becomes routable after both.
        """
        async with self.registry.transition():
            self.identifier = await self.registry.allocate_identifier(display_name)
            roster = await self.registry.list_identifiers()
            await self.send(m.connection_accepted(self.identifier, roster))
            logger.info("New client: %s", self.identifier)
            await self.registry.broadcast(m.new_user_connected(self.identifier), exclude=self)
            await self.registry.add(self)
            self.state = SessionState.REGISTERED
        return self.identifier

    async def route(self, message: Message) -> int:
        """Forward a MENSAJE verbatim to its recipient. Returns deliveries (0 or 1)."""
        recipient = message[2]
        target = await self.registry.find(recipient)
        if target is None:
            logger.debug("No client %r online; dropping message from %s", recipient, self)
            return 0
        if await target.send(message):
            logger.debug("Routed message %s -> %s", message[1], recipient)
            return 1
        return 0

    async def unregister(self) -> None:
        """Leave the registry, close the stream, tell everyone who's left."""
        async with self.registry.transition():
            removed = await self.registry.remove(self)
            self._shut_outbox()
            if removed:
                logger.info('Client "%s" disconnected', self.identifier)
                await self.registry.broadcast(m.user_disconnected(self.identifier))
        # Flushing our own stream may take a while; nobody else waits on it.
        await self._wait_stream_closed()

    async def close(self) -> None:
        """Move to CLOSED; idempotent."""
        if self.state is SessionState.CLOSED:
            return
        was_registered = self.state is SessionState.REGISTERED
        self.state = SessionState.CLOSED
        self.running = False
        if was_registered:
            await self.unregister()
        else:
            self._shut_outbox()
            await self._wait_stream_closed()

    def abort(self) -> None:
        """Drop the connection now, unsent frames included; run() then cleans up."""
        self._shut_outbox()
        self.writer.transport.abort()

    # -------------------------
    # Write path
    # -------------------------

    async def send(self, message: Message) -> bool:
        """
        Queue one frame for this client; never waits on the client's socket.

        Returns False when the peer is unreachable: stream closed, frame
        unencodable, or the outbox over its limits. An overflowing peer is
        aborted; its own receive loop then unregisters it.
        """
        if self._outbox_shut or self.writer.is_closing():
            logger.debug("Not sending %s to closed %s", message[0], self)
            return False
        try:
            data = encode(message, self.max_frame_size)
        except FrameError as exc:
            logger.warning("Failed to send %s to %s: %s", message[0], self, exc)
            return False
        if (
            self._outbox.qsize() >= self.outbox_max_frames
            or self._outbox_bytes + len(data) > self.outbox_max_bytes
        ):
            logger.warning(
                "%s is not reading (%d frames, %d bytes queued); dropping it",
                self, self._outbox.qsize(), self._outbox_bytes,
            )
            self.abort()
            return False
        self._outbox_bytes += len(data)
        self._outbox.put_nowait(data)
        return True

    async def _write_loop(self) -> None:
        """Sole writer of this stream: frames go out in queue order."""
        try:
            while True:
                data = await self._outbox.get()
                if data is None:
                    break
                self._outbox_bytes -= len(data)
                self.writer.write(data)
                await self.writer.drain()
        except OSError as exc:
            logger.warning("Failed to write to %s: %s", self, exc)
            self._outbox_shut = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as exc:
            # Peer already gone (e.g. reset); the transport is closed either way.
            logger.debug("Error while closing %s: %s", self, exc)

    def _shut_outbox(self) -> None:
        """Accept no more frames; the writer closes the stream after what's queued."""
        if self._outbox_shut:
            return
        self._outbox_shut = True
        self._outbox.put_nowait(None)

    async def _wait_stream_closed(self) -> None:
        if self._writer_task is None:
            self.writer.close()
            return
        try:
            await asyncio.wait_for(self._writer_task, self.close_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s did not take its last frames in time; aborting", self)
            self.writer.transport.abort()
