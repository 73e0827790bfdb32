"""File-backed user store with bcrypt password hashing."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import bcrypt
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from chat_relay.errors import InvalidCredentials, StorageError, UsernameTaken, ValidationError
from chat_relay.models import StoredUser, UserPublic

logger = logging.getLogger(__name__)

_users_adapter = TypeAdapter(list[StoredUser])


class IdentityStore:
    """Creates and verifies users. The whole user list lives in one JSON file.

    Writes go to a temporary file which then replaces the original, so a
    crash never leaves a half-written user list behind.
    """

    def __init__(self, path: Optional[Path] = None, *, bcrypt_rounds: int = 10):
        self.path = Path(path) if path is not None else None
        self.bcrypt_rounds = bcrypt_rounds
        self._lock = threading.Lock()
        self._users: dict[str, StoredUser] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read users: {e}", path=str(self.path)) from e
        if not raw.strip():
            return
        try:
            users = _users_adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise StorageError(f"Corrupt user file: {e}", path=str(self.path)) from e
        self._users = {u.username: u for u in users}
        logger.info(f"[AUTH] Loaded {len(self._users)} users from {self.path}")

    def _persist(self, users: dict[str, StoredUser]) -> None:
        if self.path is None:
            return
        data = _users_adapter.dump_json(list(users.values()), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".users-", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write users: {e}", path=str(self.path)) from e

    def create_user(self, username: str, password: str, email: str = "") -> UserPublic:
        if not username or not password:
            raise ValidationError("username and password required")
        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds))
        user = StoredUser(
            id=str(uuid.uuid4()),
            username=username,
            email=email or "",
            created_at=datetime.now(timezone.utc),
            password_hash=password_hash.decode("utf-8"),
        )
        with self._lock:
            if username in self._users:
                raise UsernameTaken(username)
            updated = dict(self._users)
            updated[username] = user
            self._persist(updated)
            self._users = updated
        logger.info(f"[AUTH] Registered user {username} ({user.id})")
        return user.to_public()

    def verify_user(self, username: str, password: str) -> UserPublic:
        if not username or not password:
            raise ValidationError("username and password required")
        with self._lock:
            user = self._users.get(username)
        if user is None:
            raise InvalidCredentials()
        if not bcrypt.checkpw(password.encode("utf-8"), user.password_hash.encode("utf-8")):
            raise InvalidCredentials()
        return user.to_public()

    def get_user(self, user_id: str) -> Optional[UserPublic]:
        with self._lock:
            for user in self._users.values():
                if user.id == user_id:
                    return user.to_public()
        return None

    def __len__(self) -> int:
        return len(self._users)
