"""Message log persisted as a JSON-lines journal.

Each line is one record::

    {"op": "append", "message": {...}}
    {"op": "delivered", "id": "..."}

The journal is only ever appended to. On start-up it is replayed to rebuild
the in-memory view. Every record is flushed and fsynced before the call that
wrote it returns, and the in-memory view only changes after the write
succeeded.
"""
import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from chat_relay.errors import StorageError
from chat_relay.models import Message, MessageDraft

from .message_log import MessageLog

logger = logging.getLogger(__name__)

OP_APPEND = "append"
OP_DELIVERED = "delivered"


class FileMessageLog(MessageLog):
    """Durable message log backed by an append-only journal file."""
    def __init__(self, path: Path, *, fsync: bool = True):
        super().__init__()
        self.path = Path(path)
        self.fsync = fsync
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}
        # set after a failed write which may have left a torn line behind
        self._needs_newline = False
        self._replay()

    def _replay(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self.path.touch()
                return
            with open(self.path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            raise StorageError(f"Failed to open message journal: {e}", path=str(self.path)) from e

        skipped = 0
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
                op = record.get("op")
                if op == OP_APPEND:
                    message = Message.model_validate(record["message"])
                    self._index[message.id] = len(self._messages)
                    self._messages.append(message)
                    self._last_created_at = message.created_at
                elif op == OP_DELIVERED:
                    pos = self._index.get(record["id"])
                    if pos is not None:
                        self._messages[pos] = self._messages[pos].model_copy(update={"delivered": True})
                else:
                    raise ValueError(f"unknown op {op!r}")
            except (ValueError, KeyError, TypeError, PydanticValidationError) as e:
                skipped += 1
                logger.warning(f"[LOG] Skipping unreadable journal line {lineno} in {self.path}: {e}")
        if lines and not lines[-1].endswith("\n"):
            self._needs_newline = True
        logger.info(f"[LOG] Replayed {len(self._messages)} messages from {self.path}"
                    + (f" ({skipped} lines skipped)" if skipped else ""))

    def _write_record(self, record: dict) -> None:
        """Append one record durably. Call with ``_lock`` held."""
        line = json.dumps(record, separators=(",", ":")) + "\n"
        if self._needs_newline:
            line = "\n" + line
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
        except OSError as e:
            self._needs_newline = True
            raise StorageError(f"Failed to write message journal: {e}", path=str(self.path)) from e
        self._needs_newline = False

    def append(self, draft: MessageDraft) -> Message:
        with self._lock:
            message = self._build_message(draft)
            self._write_record({"op": OP_APPEND, "message": message.model_dump(mode="json")})
            self._index[message.id] = len(self._messages)
            self._messages.append(message)
            self._last_created_at = message.created_at
        logger.debug(f"[LOG] Appended message {message.id}")
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
            self._write_record({"op": OP_DELIVERED, "id": message_id})
            self._messages[pos] = self._messages[pos].model_copy(update={"delivered": True})
        logger.debug(f"[LOG] Marked message {message_id} delivered")
        return True

    def __len__(self) -> int:
        return len(self._messages)

    async def append_async(self, draft: MessageDraft) -> Message:
        return await asyncio.to_thread(self.append, draft)

    async def tail_async(self, n: int) -> list[Message]:
        return await asyncio.to_thread(self.tail, n)

    async def mark_delivered_async(self, message_id: str) -> bool:
        return await asyncio.to_thread(self.mark_delivered, message_id)
