import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_JWT_SECRET = "replace_this_with_a_strong_secret"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


@dataclass
class RelayConfig:
    """Runtime configuration of the relay server."""
    jwt_secret: str = DEFAULT_JWT_SECRET
    """Shared secret used to sign and verify session tokens."""
    token_ttl_days: int = 7
    """Validity window of an issued session token."""
    delivery_delay: float = 0.7
    """Seconds between storing a message and confirming its delivery."""
    heartbeat_interval: float = 30.0
    """Seconds between two liveness sweeps."""
    heartbeat_max_missed: int = 1
    """Number of unanswered probes after which a connection is evicted."""
    recent_window: int = 200
    """Number of messages returned by a messages read."""
    outbox_size: int = 256
    """Maximum number of queued events per connection before it is flagged as broken."""
    data_dir: Path = field(default_factory=lambda: Path("data"))
    """Directory holding the message journal and the user file."""
    message_log: str = "file"
    """Message log backend: "file", "memory" or "mongodb"."""
    mongo_uri: Optional[str] = None
    """MongoDB connection string, required for the mongodb backend."""
    mongo_db: str = "chat_relay"
    """MongoDB database name."""
    mongo_collection: str = "messages"
    """MongoDB collection holding messages."""
    public_dir: Optional[Path] = None
    """Optional directory served as static files under /."""

    @property
    def messages_path(self) -> Path:
        return Path(self.data_dir) / "messages.jsonl"

    @property
    def users_path(self) -> Path:
        return Path(self.data_dir) / "users.json"

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build a config from environment variables.

        Call ``load_dotenv`` beforehand if a .env file should be honored.
        """
        public_dir = os.environ.get("PUBLIC_DIR")
        return cls(
            jwt_secret=os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET),
            token_ttl_days=_env_int("TOKEN_TTL_DAYS", 7),
            delivery_delay=_env_int("DELIVERY_DELAY_MS", 700) / 1000.0,
            heartbeat_interval=_env_float("HEARTBEAT_INTERVAL", 30.0),
            heartbeat_max_missed=max(1, _env_int("HEARTBEAT_MAX_MISSED", 1)),
            recent_window=_env_int("RECENT_WINDOW", 200),
            outbox_size=_env_int("OUTBOX_SIZE", 256),
            data_dir=Path(os.environ.get("DATA_DIR", "data")),
            message_log=os.environ.get("MESSAGE_LOG", "file").lower(),
            mongo_uri=os.environ.get("MONGODB_CONNECTION") or None,
            mongo_db=os.environ.get("MONGODB_DB", "chat_relay"),
            mongo_collection=os.environ.get("MONGODB_COLLECTION", "messages"),
            public_dir=Path(public_dir) if public_dir else None,
        )
