"""Unit tests for the length-prefixed frame codec."""

import asyncio
import struct

import pytest

from chatrelay import framing
from chatrelay.framing import FrameTooLarge, MalformedFrame, TruncatedFrame


@pytest.mark.parametrize(
    "message",
    [
        ["SOLICITUD_DESCONEXION"],
        ["MENSAJE", "1 - Ana", "2 - Beto", "hola"],
        ["CONEXION_ACEPTADA", "3 - Ñandú", "1 - Ana", "2 - Beto"],
        ["MENSAJE", "1 - Ana", "2 - Beto", ""],
        ["MENSAJE", "a", "b", "line one\nline two \"quoted\" 🎉"],
    ],
)
def test_round_trip(message):
    assert framing.decode(framing.encode(message)) == message


def test_frame_layout():
    data = framing.encode(["SOLICITUD_CONEXION", "Ana"])
    (length,) = struct.unpack("<I", data[:4])
    assert length == len(data) - 4
    assert data[4:] == b'["SOLICITUD_CONEXION","Ana"]'


def test_decode_rejects_short_prefix():
    with pytest.raises(TruncatedFrame):
        framing.decode(b"\x05\x00")


def test_decode_rejects_short_body():
    data = framing.encode(["MENSAJE", "a", "b", "hello"])
    with pytest.raises(TruncatedFrame):
        framing.decode(data[:-3])


def test_decode_rejects_trailing_bytes():
    data = framing.encode(["SOLICITUD_DESCONEXION"])
    with pytest.raises(TruncatedFrame):
        framing.decode(data + b"x")


def test_decode_rejects_oversized_prefix():
    data = struct.pack("<I", 1024) + b"[]"
    with pytest.raises(FrameTooLarge):
        framing.decode(data, max_size=100)


def test_encode_rejects_oversized_message():
    with pytest.raises(FrameTooLarge):
        framing.encode(["MENSAJE", "a", "b", "x" * 200], max_size=100)


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b'{"tag": "MENSAJE"}',
        b"[]",
        b'["MENSAJE", 1, 2]',
        b'"MENSAJE"',
        b"\xff\xfe",
    ],
)
def test_decode_rejects_non_message_payload(payload):
    with pytest.raises(MalformedFrame):
        framing.decode(struct.pack("<I", len(payload)) + payload)


def test_encode_rejects_non_string_fields():
    with pytest.raises(MalformedFrame):
        framing.encode(["MENSAJE", 1])
    with pytest.raises(MalformedFrame):
        framing.encode([])


def test_errors_are_distinguishable_value_errors():
    for exc in (FrameTooLarge, TruncatedFrame, MalformedFrame):
        assert issubclass(exc, framing.FrameError)
        assert issubclass(exc, ValueError)
    assert not issubclass(MalformedFrame, TruncatedFrame)


@pytest.mark.asyncio
async def test_read_message_until_clean_eof():
    reader = asyncio.StreamReader()
    reader.feed_data(framing.encode(["SOLICITUD_CONEXION", "Ana"]))
    reader.feed_data(framing.encode(["SOLICITUD_DESCONEXION"]))
    reader.feed_eof()

    assert await framing.read_message(reader) == ["SOLICITUD_CONEXION", "Ana"]
    assert await framing.read_message(reader) == ["SOLICITUD_DESCONEXION"]
    assert await framing.read_message(reader) is None


@pytest.mark.asyncio
async def test_read_message_eof_mid_frame():
    reader = asyncio.StreamReader()
    reader.feed_data(framing.encode(["MENSAJE", "a", "b", "hola"])[:-2])
    reader.feed_eof()

    with pytest.raises(asyncio.IncompleteReadError):
        await framing.read_message(reader)


@pytest.mark.asyncio
async def test_read_message_refuses_oversized_prefix():
    reader = asyncio.StreamReader()
    reader.feed_data(struct.pack("<I", 10_000))

    with pytest.raises(FrameTooLarge):
        await framing.read_message(reader, max_size=100)


@pytest.mark.asyncio
async def test_read_message_skippable_malformed_frame():
    # A bad payload is fully consumed, so the next frame still reads cleanly.
    reader = asyncio.StreamReader()
    reader.feed_data(struct.pack("<I", 4) + b"nope")
    reader.feed_data(framing.encode(["SOLICITUD_DESCONEXION"]))
    reader.feed_eof()

    with pytest.raises(MalformedFrame):
        await framing.read_message(reader)
    assert await framing.read_message(reader) == ["SOLICITUD_DESCONEXION"]
