"""Periodic liveness sweep over the connection registry.

Per connection: ``alive --probe--> pending_check --pong--> alive``. A
connection still pending when it has missed ``max_missed`` probes is marked
dead, unregistered and closed. A connection whose sends have failed is
evicted at the next tick even if it keeps answering.
"""
import asyncio
import json
import logging
from typing import Optional

from chat_relay.models import ConnectionState

from .connection import Connection
from .connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)

PROBE = json.dumps({"type": "ping"})
CLOSE_CODE_STALE = 4000


class PresenceHeartbeat:
    """Evicts connections that stop answering liveness probes."""

    def __init__(self, registry: ConnectionRegistry, *, interval: float = 30.0, max_missed: int = 1):
        if interval <= 0:
            raise ValueError("Heartbeat interval must be positive")
        self.registry = registry
        self.interval = interval
        self.max_missed = max(1, max_missed)
        self._task: Optional[asyncio.Task] = None
        self._closers: set[asyncio.Task] = set()

    def sweep(self) -> list[Connection]:
        """Run one heartbeat tick. Returns the connections evicted by it."""
        evicted = []
        for connection in self.registry.snapshot():
            handle = connection.connection_id
            if connection.broken:
                # a peer that cannot be written to is gone, whatever it still sends
                if self.registry.mark_dead(handle) is not None:
                    evicted.append(connection)
                    self._close_in_background(connection)
            elif connection.state is ConnectionState.PENDING_CHECK:
                connection.missed_probes += 1
                if connection.missed_probes >= self.max_missed:
                    if self.registry.mark_dead(handle) is not None:
                        evicted.append(connection)
                        self._close_in_background(connection)
                    continue
                self._probe(connection)
            elif connection.state is ConnectionState.ALIVE:
                if self.registry.mark_pending(handle):
                    self._probe(connection)
        if evicted:
            logger.info(f"[HEARTBEAT] Evicted {len(evicted)} stale connections")
        return evicted

    def _probe(self, connection: Connection) -> None:
        if not connection.enqueue(PROBE):
            logger.debug(f"[HEARTBEAT] Probe not queued for {connection.connection_id}")

    def _close_in_background(self, connection: Connection) -> None:
        task = asyncio.create_task(connection.close(code=CLOSE_CODE_STALE, reason="Heartbeat timeout"))
        self._closers.add(task)
        task.add_done_callback(self._closers.discard)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"[HEARTBEAT] Sweep failed: {type(e).__name__}: {e}")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="presence-heartbeat")
            logger.info(f"[HEARTBEAT] Started (interval {self.interval}s, max missed {self.max_missed})")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._closers:
            await asyncio.gather(*list(self._closers), return_exceptions=True)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
