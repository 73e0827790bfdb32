"""Error taxonomy for the relay.

Every error raised across a component boundary derives from ``RelayError`` so
the HTTP layer can translate it with a single set of handlers.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for all relay errors."""


class ValidationError(RelayError):
    """Raised for missing or malformed input (empty content, missing fields)."""


class AuthError(RelayError):
    """Raised when a request carries no usable session credential."""
    def __init__(self, message: str, reason: str = "invalid"):
        self.reason = reason
        super().__init__(message)


class MissingCredential(AuthError):
    """No bearer credential was supplied."""
    def __init__(self, message: str = "Missing token"):
        super().__init__(message, reason="missing")


class InvalidCredential(AuthError):
    """The credential failed the signature or expiry check."""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, reason="invalid")


class UsernameTaken(RelayError):
    """Raised by the identity store when a username is already registered."""
    def __init__(self, username: str):
        self.username = username
        super().__init__("username already exists")


class InvalidCredentials(RelayError):
    """Raised by the identity store when a username/password pair does not match."""
    def __init__(self, message: str = "invalid credentials"):
        super().__init__(message)


class StorageError(RelayError):
    """Raised when persisting or reading durable state fails."""
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class PeerConnectionError(RelayError):
    """Raised when sending to a real-time peer fails."""
    def __init__(self, message: str, connection_id: str):
        self.connection_id = connection_id
        super().__init__(message)
