import logging

from chat_relay.models import Message, MessageDraft

from .message_log import MessageLog

logger = logging.getLogger(__name__)


class MemoryMessageLog(MessageLog):
    """Message log kept in process memory only."""
    def __init__(self):
        super().__init__()
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}

    def append(self, draft: MessageDraft) -> Message:
        with self._lock:
            message = self._build_message(draft)
            self._index[message.id] = len(self._messages)
            self._messages.append(message)
            self._last_created_at = message.created_at
        logger.debug(f"[LOG] Appended message {message.id} in memory")
        return message

    def tail(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        with self._lock:
            return list(self._messages[-n:])

    def mark_delivered(self, message_id: str) -> bool:
        with self._lock:
            pos = self._index.get(message_id)
            if pos is None or self._messages[pos].delivered:
                return False
            self._messages[pos] = self._messages[pos].model_copy(update={"delivered": True})
            return True

    def __len__(self) -> int:
        return len(self._messages)

    async def append_async(self, draft: MessageDraft) -> Message:
        return self.append(draft)

    async def tail_async(self, n: int) -> list[Message]:
        return self.tail(n)

    async def mark_delivered_async(self, message_id: str) -> bool:
        return self.mark_delivered(message_id)
