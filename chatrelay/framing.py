import asyncio
import json
import struct
from typing import List, Optional

from . import config

"""
framing.py — length-prefixed framing of tagged string lists for asyncio streams.

Protocol:
- Each frame = 4-byte little-endian unsigned length (N) + N bytes of UTF-8 JSON.
- The JSON is always a non-empty array of strings; element 0 is the tag.
- Hard cap (config.MAX_FRAME_SIZE, 4 MiB by default) on both sides.

Errors:
- FrameTooLarge   — length prefix above the cap; the stream can't be resynced.
- TruncatedFrame  — decode() got fewer (or more) bytes than the prefix says.
- MalformedFrame  — the payload is well-delimited but isn't a list of strings.
All three derive from FrameError (a ValueError).
"""

LENGTH_STRUCT = struct.Struct("<I")  # little-endian unsigned 32-bit length

Message = List[str]


class FrameError(ValueError):
    """A frame could not be decoded."""


class FrameTooLarge(FrameError):
    pass


class TruncatedFrame(FrameError):
    pass


class MalformedFrame(FrameError):
    pass


def _check_message(obj) -> Message:
    if not isinstance(obj, list) or not obj:
        raise MalformedFrame("Frame payload must be a non-empty list")
    if not all(isinstance(field, str) for field in obj):
        raise MalformedFrame("Frame fields must all be strings")
    return obj


def encode_payload(message: Message, max_size: int = config.MAX_FRAME_SIZE) -> bytes:
    """Serialize a message to compact JSON (no length prefix)."""
    _check_message(message)
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if len(payload) > max_size:
        raise FrameTooLarge(f"Frame too large: {len(payload)} > {max_size}")
    return payload


def decode_payload(payload: bytes) -> Message:
    """Parse a frame body back into a message."""
    try:
        obj = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        # Keep the message short; no payload echo.
        raise MalformedFrame(f"Invalid frame payload: {exc}") from exc
    return _check_message(obj)


def encode(message: Message, max_size: int = config.MAX_FRAME_SIZE) -> bytes:
    """Full frame: length prefix followed by the JSON payload."""
    payload = encode_payload(message, max_size)
    return LENGTH_STRUCT.pack(len(payload)) + payload


def decode(data: bytes, max_size: int = config.MAX_FRAME_SIZE) -> Message:
    """
    Decode exactly one complete frame.

    Raises:
        TruncatedFrame: missing prefix bytes, short body or trailing bytes.
        FrameTooLarge: the prefix announces more than max_size.
        MalformedFrame: the body is not a non-empty JSON list of strings.
    """
    if len(data) < LENGTH_STRUCT.size:
        raise TruncatedFrame(f"Need {LENGTH_STRUCT.size} prefix bytes, got {len(data)}")
    (length,) = LENGTH_STRUCT.unpack_from(data)
    if length > max_size:
        raise FrameTooLarge(f"Frame too large: {length} > {max_size}")
    body = data[LENGTH_STRUCT.size:]
    if len(body) != length:
        raise TruncatedFrame(f"Frame announces {length} bytes, got {len(body)}")
    return decode_payload(body)


async def read_message(
    reader: asyncio.StreamReader, max_size: int = config.MAX_FRAME_SIZE
) -> Optional[Message]:
    """
    Read one frame from the stream.

    Returns None when the peer closed the stream cleanly between frames.
    A close in the middle of a frame surfaces as asyncio.IncompleteReadError.
    """
    try:
        len_bytes = await reader.readexactly(LENGTH_STRUCT.size)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            return None
        raise
    (length,) = LENGTH_STRUCT.unpack(len_bytes)

    # Sanity check before allocating/reading the body.
    if length > max_size:
        raise FrameTooLarge(f"Frame too large: {length} > {max_size}")

    payload = await reader.readexactly(length)
    return decode_payload(payload)


async def write_message(
    writer: asyncio.StreamWriter, message: Message, max_size: int = config.MAX_FRAME_SIZE
) -> None:
    """Frame and write one message, then let the transport flush."""
    writer.write(encode(message, max_size))
    await writer.drain()
