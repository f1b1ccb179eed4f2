"""Unit tests for ClientRegistry with stand-in handlers."""

import asyncio

import pytest

from chatrelay.registry import ClientRegistry


class FakeHandler:
    def __init__(self, identifier, reachable=True):
        self.identifier = identifier
        self.writer = object()
        self.reachable = reachable
        self.sent = []

    async def send(self, message):
        if not self.reachable:
            return False
        self.sent.append(message)
        return True


@pytest.mark.asyncio
async def test_add_keeps_connection_order():
    registry = ClientRegistry()
    for name in ("1 - Ana", "2 - Beto", "3 - Cata"):
        await registry.add(FakeHandler(name))

    assert await registry.list_identifiers() == ["1 - Ana", "2 - Beto", "3 - Cata"]
    assert len(registry) == 3


@pytest.mark.asyncio
async def test_add_requires_identifier():
    registry = ClientRegistry()
    with pytest.raises(ValueError):
        await registry.add(FakeHandler(None))
    assert await registry.list_identifiers() == []


@pytest.mark.asyncio
async def test_add_ignores_same_handler_twice():
    registry = ClientRegistry()
    ana = FakeHandler("1 - Ana")
    await registry.add(ana)
    await registry.add(ana)
    assert await registry.list_identifiers() == ["1 - Ana"]


@pytest.mark.asyncio
async def test_remove_is_idempotent():
    registry = ClientRegistry()
    ana, beto = FakeHandler("1 - Ana"), FakeHandler("2 - Beto")
    await registry.add(ana)
    await registry.add(beto)

    assert await registry.remove(ana) is True
    assert await registry.remove(ana) is False
    assert await registry.remove(FakeHandler("9 - Nadie")) is False
    assert await registry.list_identifiers() == ["2 - Beto"]


@pytest.mark.asyncio
async def test_find():
    registry = ClientRegistry()
    beto = FakeHandler("2 - Beto")
    await registry.add(FakeHandler("1 - Ana"))
    await registry.add(beto)

    assert await registry.find("2 - Beto") is beto
    assert await registry.find("Beto") is None


@pytest.mark.asyncio
async def test_snapshot_is_detached():
    registry = ClientRegistry()
    await registry.add(FakeHandler("1 - Ana"))
    snapshot = await registry.list_identifiers()
    await registry.add(FakeHandler("2 - Beto"))
    assert snapshot == ["1 - Ana"]


@pytest.mark.asyncio
async def test_allocate_identifier_counts_up():
    registry = ClientRegistry()
    assert await registry.allocate_identifier("Alice") == "1 - Alice"
    assert await registry.allocate_identifier("Alice") == "2 - Alice"
    assert await registry.allocate_identifier("Bob") == "3 - Bob"


@pytest.mark.asyncio
async def test_broadcast_skips_excluded_and_counts_deliveries():
    registry = ClientRegistry()
    ana, beto, cata = FakeHandler("1 - Ana"), FakeHandler("2 - Beto"), FakeHandler("3 - Cata", reachable=False)
    for h in (ana, beto, cata):
        await registry.add(h)

    delivered = await registry.broadcast(["USUARIO_DESCONECTADO", "4 - Dani"], exclude=ana)

    assert delivered == 1
    assert ana.sent == []
    assert beto.sent == [["USUARIO_DESCONECTADO", "4 - Dani"]]


@pytest.mark.asyncio
async def test_concurrent_adds_and_removes():
    registry = ClientRegistry()
    handlers = [FakeHandler(await registry.allocate_identifier(f"user{i}")) for i in range(50)]
    await asyncio.gather(*(registry.add(h) for h in handlers))

    leaving = handlers[::3]
    await asyncio.gather(*(registry.remove(h) for h in leaving), *(registry.remove(h) for h in leaving))

    identifiers = await registry.list_identifiers()
    expected = {h.identifier for h in handlers} - {h.identifier for h in leaving}
    assert len(identifiers) == len(set(identifiers))
    assert set(identifiers) == expected
