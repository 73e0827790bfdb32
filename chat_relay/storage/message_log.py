from abc import ABC, abstractmethod
from datetime import datetime, timezone
import threading
import uuid
from typing import Optional

from chat_relay.models import Message, MessageDraft


class MessageLog(ABC):
    """Base class for ordered, append-only message stores.

    Appends and delivered-marks are serialized through ``_lock``; readers take
    a snapshot under the same lock.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._last_created_at: Optional[datetime] = None

    def _new_id(self) -> str:
        return str(uuid.uuid4())

    def _next_timestamp(self) -> datetime:
        """Current UTC time, clamped so timestamps never go backwards. Call with ``_lock`` held."""
        now = datetime.now(timezone.utc)
        if self._last_created_at is not None and now < self._last_created_at:
            now = self._last_created_at
        return now

    def _build_message(self, draft: MessageDraft) -> Message:
        return Message(
            id=self._new_id(),
            content=draft.content,
            user_id=draft.user_id,
            sender_name=draft.sender_name,
            created_at=self._next_timestamp(),
            delivered=False,
        )

    @abstractmethod
    def append(self, draft: MessageDraft) -> Message:
        """Persist a new message and return it with its assigned id and timestamp."""
        raise NotImplementedError("Subclasses must implement append")

    @abstractmethod
    def tail(self, n: int) -> list[Message]:
        """Return up to ``n`` most recent messages, oldest first."""
        raise NotImplementedError("Subclasses must implement tail")

    @abstractmethod
    def mark_delivered(self, message_id: str) -> bool:
        """Flag a message as delivered. Returns False if missing or already delivered."""
        raise NotImplementedError("Subclasses must implement mark_delivered")

    @abstractmethod
    async def append_async(self, draft: MessageDraft) -> Message:
        """Persist a new message (async version)."""
        raise NotImplementedError("Subclasses must implement append_async")

    @abstractmethod
    async def tail_async(self, n: int) -> list[Message]:
        """Return up to ``n`` most recent messages (async version)."""
        raise NotImplementedError("Subclasses must implement tail_async")

    @abstractmethod
    async def mark_delivered_async(self, message_id: str) -> bool:
        """Flag a message as delivered (async version)."""
        raise NotImplementedError("Subclasses must implement mark_delivered_async")

    def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""
        pass
