from .session_auth import SessionAuthenticator, SessionTokenCodec
from .identity_store import IdentityStore

__all__ = ["SessionAuthenticator", "SessionTokenCodec", "IdentityStore"]
