"""Wiring of all relay components into one owned object."""
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from chat_relay.auth import IdentityStore, SessionAuthenticator, SessionTokenCodec
from chat_relay.config import RelayConfig, DEFAULT_JWT_SECRET
from chat_relay.message_service import MessageService
from chat_relay.realtime import BroadcastRelay, ConnectionRegistry, PresenceHeartbeat
from chat_relay.storage import FileMessageLog, MemoryMessageLog, MessageLog

logger = logging.getLogger(__name__)


def build_message_log(config: RelayConfig) -> MessageLog:
    backend = config.message_log
    if backend == "memory":
        return MemoryMessageLog()
    if backend == "file":
        return FileMessageLog(config.messages_path)
    if backend == "mongodb":
        from chat_relay.storage import MongoDBMessageLog
        if not config.mongo_uri:
            raise ValueError("MONGODB_CONNECTION is required for the mongodb message log")
        return MongoDBMessageLog(
            mongo_uri=config.mongo_uri,
            mongo_db=config.mongo_db,
            mongo_collection=config.mongo_collection,
        )
    raise ValueError(f"Unknown message log backend: {backend}")


@dataclass
class RelayHub:
    """Owns every long-lived component of a running relay."""
    config: RelayConfig
    message_log: MessageLog
    identity_store: IdentityStore
    codec: SessionTokenCodec
    authenticator: SessionAuthenticator
    registry: ConnectionRegistry
    relay: BroadcastRelay
    heartbeat: PresenceHeartbeat
    service: MessageService
    _started: bool = field(default=False, repr=False)

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RelayHub":
        if config.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("[HUB] JWT_SECRET is not set, using the built-in development secret")
        message_log = build_message_log(config)
        identity_store = IdentityStore(config.users_path)
        codec = SessionTokenCodec(config.jwt_secret, ttl=timedelta(days=config.token_ttl_days))
        registry = ConnectionRegistry()
        relay = BroadcastRelay(registry, message_log, delivery_delay=config.delivery_delay)
        heartbeat = PresenceHeartbeat(
            registry,
            interval=config.heartbeat_interval,
            max_missed=config.heartbeat_max_missed,
        )
        service = MessageService(
            message_log=message_log,
            registry=registry,
            relay=relay,
            recent_window=config.recent_window,
        )
        return cls(
            config=config,
            message_log=message_log,
            identity_store=identity_store,
            codec=codec,
            authenticator=SessionAuthenticator(codec),
            registry=registry,
            relay=relay,
            heartbeat=heartbeat,
            service=service,
        )

    async def start(self) -> None:
        if self._started:
            return
        self.heartbeat.start()
        self._started = True
        logger.info("[HUB] Relay started")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.heartbeat.stop()
        await self.relay.shutdown()
        for connection in self.registry.snapshot():
            self.registry.unregister(connection.connection_id)
            await connection.close(code=1001, reason="Server shutting down")
        self.message_log.close()
        logger.info("[HUB] Relay stopped")
