"""Models shared by the relay components."""
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ANONYMOUS_SENDER = "Anonymous"


class Identity(BaseModel):
    """Authenticated caller decoded from a session token."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str


class UserPublic(BaseModel):
    """Public-safe projection of a stored user (never carries the hash)."""
    id: str
    username: str
    email: str = ""
    created_at: datetime


class StoredUser(UserPublic):
    """A user record as persisted by the identity store."""
    password_hash: str

    def to_public(self) -> UserPublic:
        return UserPublic(id=self.id, username=self.username, email=self.email, created_at=self.created_at)


class MessageDraft(BaseModel):
    """A message as submitted, before the log assigns id and timestamp."""
    content: str
    user_id: Optional[str] = None
    sender_name: str = ANONYMOUS_SENDER


class Message(BaseModel):
    """A message owned by the message log."""
    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    user_id: Optional[str] = None
    sender_name: str
    created_at: datetime
    delivered: bool = False


class ConnectionState(str, Enum):
    """Liveness of a real-time connection."""
    ALIVE = "alive"
    PENDING_CHECK = "pending_check"
    DEAD = "dead"


# ── Relay events ─────────────────────────────────────────────────


class NewMessage(BaseModel):
    """Pushed to every connection when a message was stored."""
    type: Literal["new_message"] = "new_message"
    message: Message


class MessageDelivered(BaseModel):
    """Pushed to every connection once a message was confirmed delivered."""
    type: Literal["message_delivered"] = "message_delivered"
    id: str


RelayEvent = Annotated[Union[NewMessage, MessageDelivered], Field(discriminator="type")]

relay_event_adapter: TypeAdapter[RelayEvent] = TypeAdapter(RelayEvent)


def encode_event(event: RelayEvent) -> str:
    """Serialize a relay event to its JSON wire form."""
    return event.model_dump_json()


def decode_event(raw: Union[str, bytes]) -> RelayEvent:
    """Parse a JSON wire payload back into a relay event."""
    return relay_event_adapter.validate_json(raw)
