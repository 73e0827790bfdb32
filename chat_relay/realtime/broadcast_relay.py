import logging
from typing import Optional

from chat_relay.models import MessageDelivered, RelayEvent, encode_event
from chat_relay.storage.message_log import MessageLog

from .connection import Connection
from .connection_registry import ConnectionRegistry
from .delivery import DeliveryScheduler

logger = logging.getLogger(__name__)

DEFAULT_DELIVERY_DELAY = 0.7


class BroadcastRelay:
    """Fans relay events out to every live connection and confirms deliveries."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        message_log: MessageLog,
        *,
        delivery_delay: float = DEFAULT_DELIVERY_DELAY,
        scheduler: Optional[DeliveryScheduler] = None,
    ):
        self.registry = registry
        self.message_log = message_log
        self.delivery_delay = delivery_delay
        self.scheduler = scheduler or DeliveryScheduler()

    def publish(self, event: RelayEvent) -> int:
        """Queue ``event`` on every live connection. Returns the number of delivery attempts."""
        payload = encode_event(event)
        dropped = 0

        def _deliver(connection: Connection) -> None:
            nonlocal dropped
            try:
                if not connection.enqueue(payload):
                    dropped += 1
            except Exception as e:
                dropped += 1
                logger.debug(f"[RELAY] Could not queue event for {connection.connection_id}: {e}")

        attempts = self.registry.for_each_live(_deliver)
        logger.debug(f"[RELAY] Published {event.type} to {attempts} connections ({dropped} dropped)")
        return attempts

    def confirm_later(self, message_id: str) -> None:
        """Schedule the delivery confirmation for a freshly published message."""
        self.scheduler.schedule(message_id, self.delivery_delay, lambda: self._confirm(message_id))

    async def _confirm(self, message_id: str) -> None:
        if await self.message_log.mark_delivered_async(message_id):
            self.publish(MessageDelivered(id=message_id))
        else:
            logger.debug(f"[RELAY] Message {message_id} not confirmed (missing or already delivered)")

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
