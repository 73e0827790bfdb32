"""Signed session tokens and bearer authentication.

Tokens are HS256 JWTs carrying ``id``, ``username``, ``iat`` and ``exp``.
Nothing is stored server side; every use re-verifies signature and expiry.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from chat_relay.errors import InvalidCredential, MissingCredential
from chat_relay.models import Identity

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "


class SessionTokenCodec:
    """Issues and verifies session tokens with a shared secret."""

    def __init__(self, secret: str, *, ttl: timedelta = timedelta(days=7)):
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self.ttl = ttl

    def issue_token(self, user_id: str, username: str, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "id": user_id,
            "username": username,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify_token(self, token: str) -> Identity:
        """Decode a token.

        :raises MissingCredential: for an empty token
        :raises InvalidCredential: when the signature, expiry or payload is invalid
        """
        if not token:
            raise MissingCredential()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM], options={"require": ["exp"]})
        except jwt.ExpiredSignatureError:
            raise InvalidCredential("Token expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"[AUTH] Token rejected: {e}")
            raise InvalidCredential()
        user_id = payload.get("id")
        username = payload.get("username")
        if not isinstance(user_id, str) or not isinstance(username, str):
            raise InvalidCredential()
        return Identity(user_id=user_id, username=username)


class SessionAuthenticator:
    """Turns bearer credentials into identities. Holds no mutable state."""

    def __init__(self, codec: SessionTokenCodec):
        self._codec = codec

    def authenticate(self, credential: Optional[str]) -> Identity:
        """Authenticate an ``Authorization`` header value of the form ``Bearer <token>``."""
        if not credential or not credential.startswith(BEARER_PREFIX):
            raise MissingCredential()
        token = credential[len(BEARER_PREFIX):].strip()
        if not token:
            raise MissingCredential()
        return self._codec.verify_token(token)

    def verify_token(self, token: Optional[str]) -> Identity:
        return self._codec.verify_token(token or "")

    def try_authenticate_token(self, token: Optional[str]) -> Optional[Identity]:
        """Like ``verify_token`` but returns None instead of raising."""
        if not token:
            return None
        try:
            return self._codec.verify_token(token)
        except (MissingCredential, InvalidCredential) as e:
            logger.info(f"[AUTH] Ignoring unusable connection token: {e}")
            return None
