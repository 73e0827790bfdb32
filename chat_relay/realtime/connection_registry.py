import logging
import threading
from typing import Callable, Optional

from chat_relay.models import ConnectionState

from .connection import Connection

logger = logging.getLogger(__name__)

ConnectionHandle = str


class ConnectionRegistry:
    """Tracks registered real-time connections and their liveness.

    A connection is *live* while it is registered and not dead; both alive and
    pending-check connections receive broadcasts. Iteration always runs over a
    snapshot, so callbacks may register or unregister freely.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: dict[ConnectionHandle, Connection] = {}

    def register(self, connection: Connection) -> ConnectionHandle:
        handle = connection.connection_id
        with self._lock:
            connection.state = ConnectionState.ALIVE
            connection.missed_probes = 0
            self._connections[handle] = connection
        who = connection.identity.username if connection.identity else "anonymous"
        logger.info(f"[REGISTRY] Registered connection {handle} ({who}), {len(self._connections)} open")
        return handle

    def unregister(self, handle: ConnectionHandle) -> Optional[Connection]:
        with self._lock:
            connection = self._connections.pop(handle, None)
        if connection is not None:
            logger.info(f"[REGISTRY] Unregistered connection {handle}, {len(self._connections)} open")
        return connection

    def get(self, handle: ConnectionHandle) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(handle)

    def snapshot(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def for_each_live(self, fn: Callable[[Connection], None]) -> int:
        """Call ``fn`` for every live connection. Returns how many were visited."""
        visited = 0
        for connection in self.snapshot():
            if connection.state is ConnectionState.DEAD:
                continue
            fn(connection)
            visited += 1
        return visited

    def mark_alive(self, handle: ConnectionHandle) -> bool:
        with self._lock:
            connection = self._connections.get(handle)
            if connection is None or connection.state is ConnectionState.DEAD or connection.broken:
                return False
            connection.state = ConnectionState.ALIVE
            connection.missed_probes = 0
        connection.touch()
        return True

    def mark_pending(self, handle: ConnectionHandle) -> bool:
        with self._lock:
            connection = self._connections.get(handle)
            if connection is None or connection.state is ConnectionState.DEAD:
                return False
            connection.state = ConnectionState.PENDING_CHECK
        return True

    def mark_dead(self, handle: ConnectionHandle) -> Optional[Connection]:
        """Flag a connection dead and remove it from the registry."""
        with self._lock:
            connection = self._connections.pop(handle, None)
            if connection is not None:
                connection.state = ConnectionState.DEAD
        if connection is not None:
            logger.info(f"[REGISTRY] Connection {handle} is dead, {len(self._connections)} open")
        return connection

    def is_live(self, handle: ConnectionHandle) -> bool:
        with self._lock:
            connection = self._connections.get(handle)
            return connection is not None and connection.state is not ConnectionState.DEAD

    def count_online(self) -> int:
        """Connections currently alive and carrying an authenticated identity."""
        return sum(
            1 for c in self.snapshot()
            if c.state is ConnectionState.ALIVE and c.identity is not None
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
