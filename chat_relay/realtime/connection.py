"""A single real-time peer and its outbound queue."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Optional, Protocol

from chat_relay.errors import PeerConnectionError
from chat_relay.models import ConnectionState, Identity

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What a connection needs from the underlying socket (Starlette's WebSocket fits)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class Connection:
    """A registered peer.

    Outbound payloads go through a bounded FIFO drained by one writer task, so
    a slow peer only ever delays itself. A failed send flags the connection as
    broken; later payloads are dropped until the heartbeat evicts it.
    """

    def __init__(self, transport: Transport, identity: Optional[Identity] = None, *, outbox_size: int = 256):
        self.connection_id = uuid.uuid4().hex
        self.identity = identity
        self.state = ConnectionState.ALIVE
        self.missed_probes = 0
        self.connected_at = time.monotonic()
        self.last_seen = self.connected_at
        self.broken = False
        self._transport = transport
        self._outbox: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=outbox_size)
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"outbox-{self.connection_id}")

    def enqueue(self, payload: str) -> bool:
        """Queue a payload for sending. Returns False if it was dropped."""
        if self.broken or self._closed:
            return False
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning(f"[WS] Outbox full for connection {self.connection_id}, flagging as broken")
            self.broken = True
            return False
        return True

    async def _send(self, payload: str) -> None:
        try:
            await self._transport.send_text(payload)
        except Exception as e:
            raise PeerConnectionError(f"{type(e).__name__}: {e}", self.connection_id) from e

    async def _drain(self) -> None:
        while True:
            payload = await self._outbox.get()
            try:
                if payload is None:
                    return
                if self.broken:
                    continue
                await self._send(payload)
            except PeerConnectionError as e:
                self.broken = True
                logger.debug(f"[WS] Send failed on connection {e.connection_id}: {e}")
            finally:
                self._outbox.task_done()

    async def wait_idle(self) -> None:
        """Wait until everything queued so far was handed to the transport (or dropped)."""
        await self._outbox.join()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        """Stop the writer and close the transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        try:
            await self._transport.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"[WS] Closing connection {self.connection_id} failed: {e}")

    def __repr__(self) -> str:
        who = self.identity.username if self.identity else "anonymous"
        return f"Connection({self.connection_id}, {who}, {self.state.value})"
