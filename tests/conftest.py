"""Test configuration and fixtures."""
import asyncio
from typing import Optional

import pytest

from chat_relay.models import Identity
from chat_relay.realtime.connection import Connection
from chat_relay.realtime.connection_registry import ConnectionRegistry
from chat_relay.storage.memory_message_log import MemoryMessageLog


class FakeTransport:
    """Records everything sent to it, like a connected WebSocket would receive it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[str] = []
        self.send_attempts = 0
        self.closed_with: Optional[int] = None

    async def send_text(self, data: str) -> None:
        self.send_attempts += 1
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed_with = code


class SlowTransport(FakeTransport):
    """Blocks on every send until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def send_text(self, data: str) -> None:
        await self.release.wait()
        await super().send_text(data)


ALICE = Identity(user_id="u-alice", username="alice")
BOB = Identity(user_id="u-bob", username="bob")


def open_connection(registry: ConnectionRegistry, transport=None, identity: Optional[Identity] = None):
    """Create, start and register a connection. Must run inside an event loop."""
    transport = transport or FakeTransport()
    connection = Connection(transport, identity)
    connection.start()
    handle = registry.register(connection)
    return handle, connection, transport


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def memory_log():
    return MemoryMessageLog()
