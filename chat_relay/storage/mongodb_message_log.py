import asyncio
import logging
from typing import Any, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError
from motor.motor_asyncio import AsyncIOMotorClient

from chat_relay.errors import StorageError
from chat_relay.models import Message, MessageDraft

from .message_log import MessageLog

logger = logging.getLogger(__name__)

SEQUENCE_ID = "__sequence__"


class MongoDBMessageLog(MessageLog):
    """Message log stored in a MongoDB collection.

    Ordering comes from a per-collection sequence counter incremented with an
    atomic ``find_one_and_update``. The delivered flag is flipped with a
    conditional update, so concurrent confirmations of the same message
    report success exactly once.
    """
    def __init__(
        self,
        *,
        mongo_uri: str,
        mongo_db: str,
        mongo_collection: str,
    ):
        super().__init__()
        if not mongo_uri or not mongo_db or not mongo_collection:
            raise ValueError("MongoDB URI, database, and collection are required")
        self.mongo_uri = mongo_uri
        self.mongo_db = mongo_db
        self.mongo_collection = mongo_collection
        self._client = MongoClient(mongo_uri, tz_aware=True)
        self._coll = self._client[mongo_db][mongo_collection]
        self._counters = self._client[mongo_db][f"{mongo_collection}_counters"]
        self._async_client = AsyncIOMotorClient(mongo_uri, tz_aware=True)
        self._async_coll = self._async_client[mongo_db][mongo_collection]
        self._async_counters = self._async_client[mongo_db][f"{mongo_collection}_counters"]
        self._async_lock = asyncio.Lock()
        try:
            self._coll.create_index([("seq", ASCENDING)], unique=True)
            last = self._coll.find_one({}, sort=[("seq", DESCENDING)])
        except PyMongoError as e:
            raise StorageError(f"Failed to prepare MongoDB message collection: {e}") from e
        if last is not None:
            self._last_created_at = last["created_at"]

    @staticmethod
    def _to_document(message: Message, seq: int) -> dict[str, Any]:
        doc = message.model_dump()
        doc["_id"] = doc.pop("id")
        doc["seq"] = seq
        return doc

    @staticmethod
    def _from_document(doc: dict[str, Any]) -> Message:
        return Message(
            id=doc["_id"],
            content=doc["content"],
            user_id=doc.get("user_id"),
            sender_name=doc["sender_name"],
            created_at=doc["created_at"],
            delivered=bool(doc.get("delivered", False)),
        )

    def _next_seq(self) -> int:
        counter = self._counters.find_one_and_update(
            {"_id": SEQUENCE_ID},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["value"])

    async def _next_seq_async(self) -> int:
        counter = await self._async_counters.find_one_and_update(
            {"_id": SEQUENCE_ID},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["value"])

    def append(self, draft: MessageDraft) -> Message:
        with self._lock:
            message = self._build_message(draft)
            try:
                seq = self._next_seq()
                self._coll.insert_one(self._to_document(message, seq))
            except PyMongoError as e:
                raise StorageError(f"Failed to append message to MongoDB: {e}") from e
            self._last_created_at = message.created_at
        return message

    async def append_async(self, draft: MessageDraft) -> Message:
        async with self._async_lock:
            with self._lock:
                message = self._build_message(draft)
            try:
                seq = await self._next_seq_async()
                await self._async_coll.insert_one(self._to_document(message, seq))
            except PyMongoError as e:
                raise StorageError(f"Failed to append message to MongoDB (async): {e}") from e
            with self._lock:
                self._last_created_at = message.created_at
        return message

    def tail(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        try:
            docs = list(self._coll.find({}).sort("seq", DESCENDING).limit(n))
        except PyMongoError as e:
            raise StorageError(f"Failed to read messages from MongoDB: {e}") from e
        return [self._from_document(d) for d in reversed(docs)]

    async def tail_async(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        try:
            docs = await self._async_coll.find({}).sort("seq", DESCENDING).limit(n).to_list(length=n)
        except PyMongoError as e:
            raise StorageError(f"Failed to read messages from MongoDB (async): {e}") from e
        return [self._from_document(d) for d in reversed(docs)]

    def mark_delivered(self, message_id: str) -> bool:
        try:
            result = self._coll.update_one({"_id": message_id, "delivered": False}, {"$set": {"delivered": True}})
        except PyMongoError as e:
            raise StorageError(f"Failed to mark message delivered in MongoDB: {e}") from e
        return result.modified_count == 1

    async def mark_delivered_async(self, message_id: str) -> bool:
        try:
            result = await self._async_coll.update_one(
                {"_id": message_id, "delivered": False}, {"$set": {"delivered": True}}
            )
        except PyMongoError as e:
            raise StorageError(f"Failed to mark message delivered in MongoDB (async): {e}") from e
        return result.modified_count == 1

    def drop(self) -> None:
        """Remove all stored messages and the sequence counter."""
        self._client[self.mongo_db].drop_collection(self.mongo_collection)
        self._client[self.mongo_db].drop_collection(f"{self.mongo_collection}_counters")

    def close(self) -> None:
        self._client.close()
        self._async_client.close()
