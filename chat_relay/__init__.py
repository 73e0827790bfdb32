"""chat-relay - real-time message relay package."""

from chat_relay.config import RelayConfig
from chat_relay.errors import (
    RelayError, ValidationError, AuthError, MissingCredential, InvalidCredential,
    UsernameTaken, InvalidCredentials, StorageError, PeerConnectionError,
)
from chat_relay.models import Identity, Message, MessageDraft, MessageDelivered, NewMessage, UserPublic
from chat_relay.storage import MessageLog, MemoryMessageLog, FileMessageLog
from chat_relay.realtime import BroadcastRelay, Connection, ConnectionRegistry, PresenceHeartbeat
from chat_relay.auth import IdentityStore, SessionAuthenticator, SessionTokenCodec
from chat_relay.message_service import MessageService
from chat_relay.hub import RelayHub

__all__ = [
    "RelayConfig",
    "RelayError",
    "ValidationError",
    "AuthError",
    "MissingCredential",
    "InvalidCredential",
    "UsernameTaken",
    "InvalidCredentials",
    "StorageError",
    "PeerConnectionError",
    "Identity",
    "Message",
    "MessageDraft",
    "MessageDelivered",
    "NewMessage",
    "UserPublic",
    "MessageLog",
    "MemoryMessageLog",
    "FileMessageLog",
    "MongoDBMessageLog",
    "BroadcastRelay",
    "Connection",
    "ConnectionRegistry",
    "PresenceHeartbeat",
    "IdentityStore",
    "SessionAuthenticator",
    "SessionTokenCodec",
    "MessageService",
    "RelayHub",
    "create_app",
]


def __getattr__(name: str):
    if name == "MongoDBMessageLog":
        from chat_relay.storage.mongodb_message_log import MongoDBMessageLog
        return MongoDBMessageLog
    if name == "create_app":
        from chat_relay.standalone import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
