"""Framework-agnostic request handlers for posting and reading messages."""
import logging
from typing import Any, Optional

from chat_relay.errors import MissingCredential, ValidationError
from chat_relay.models import ANONYMOUS_SENDER, Identity, Message, MessageDraft, NewMessage
from chat_relay.realtime.broadcast_relay import BroadcastRelay
from chat_relay.realtime.connection_registry import ConnectionRegistry
from chat_relay.storage.message_log import MessageLog

logger = logging.getLogger(__name__)

DEFAULT_RECENT_WINDOW = 200


class MessageService:
    def __init__(
        self,
        *,
        message_log: MessageLog,
        registry: ConnectionRegistry,
        relay: BroadcastRelay,
        recent_window: int = DEFAULT_RECENT_WINDOW,
    ):
        self.message_log = message_log
        self.registry = registry
        self.relay = relay
        self.recent_window = recent_window

    async def post_message(self, content: Any, *, anonymous: bool = False,
                           identity: Optional[Identity] = None) -> Message:
        """Store a message, broadcast it and schedule its delivery confirmation.

        :raises ValidationError: if content is not a non-empty string
        :raises MissingCredential: if the post is neither authenticated nor anonymous
        :raises StorageError: if the message could not be persisted
        """
        if not isinstance(content, str) or not content:
            raise ValidationError("content required")
        if not anonymous and identity is None:
            raise MissingCredential()

        if anonymous:
            draft = MessageDraft(content=content, user_id=None, sender_name=ANONYMOUS_SENDER)
        else:
            draft = MessageDraft(content=content, user_id=identity.user_id, sender_name=identity.username)

        message = await self.message_log.append_async(draft)
        attempts = self.relay.publish(NewMessage(message=message))
        self.relay.confirm_later(message.id)
        logger.info(f"[MESSAGES] Stored message {message.id} from {message.sender_name}, "
                    f"broadcast to {attempts} connections")
        return message

    async def read_messages(self) -> list[Message]:
        return await self.message_log.tail_async(self.recent_window)

    def stats(self) -> dict:
        return {"online_users": self.registry.count_online()}
