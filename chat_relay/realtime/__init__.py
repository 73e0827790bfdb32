from .connection import Connection, Transport
from .connection_registry import ConnectionRegistry, ConnectionHandle
from .delivery import DeliveryScheduler
from .broadcast_relay import BroadcastRelay
from .heartbeat import PresenceHeartbeat

__all__ = [
    "Connection",
    "Transport",
    "ConnectionRegistry",
    "ConnectionHandle",
    "DeliveryScheduler",
    "BroadcastRelay",
    "PresenceHeartbeat",
]
