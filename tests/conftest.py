"""Shared fixtures: a live relay on a free local port and a client factory."""

import pytest_asyncio

from chatrelay.client import RelayClient
from chatrelay.server import RelayServer


@pytest_asyncio.fixture
async def relay():
    """Relay bound to 127.0.0.1 on a free port, closed after the test."""
    server = RelayServer("127.0.0.1", 0)
    await server.start()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def connect(relay):
    """Factory: open a client connection to the relay (not joined yet)."""
    clients = []

    async def _connect() -> RelayClient:
        client = RelayClient("127.0.0.1", relay.port)
        await client.connect()
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        await client.close()


@pytest_asyncio.fixture
async def join(connect):
    """Factory: connect and join under a display name."""

    async def _join(name: str) -> RelayClient:
        client = await connect()
        await client.join(name)
        return client

    return _join
