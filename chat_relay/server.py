"""HTTP and WebSocket routes of the relay (FastAPI).

Host apps call ``build_http_router(hub)`` and ``install_exception_handlers(app)``.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from chat_relay.errors import (
    AuthError, InvalidCredentials, RelayError, StorageError, UsernameTaken, ValidationError,
)
from chat_relay.hub import RelayHub
from chat_relay.models import Identity, Message, UserPublic
from chat_relay.realtime.connection import Connection

logger = logging.getLogger(__name__)

# API path constants
API_PREFIX = "/api"
API_REGISTER = f"{API_PREFIX}/register"
API_LOGIN = f"{API_PREFIX}/login"
API_MESSAGES = f"{API_PREFIX}/messages"
API_STATS = f"{API_PREFIX}/stats"
WS_PATH = "/ws"


# ── Request / response models ───────────────────────────────────────

class CredentialsPayload(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None


class PostMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Any = None
    is_anonymous: bool = Field(default=False, alias="isAnonymous")


class AuthResponse(BaseModel):
    token: str
    user: UserPublic


class PostMessageResponse(BaseModel):
    message: Message


# ── Error mapping ───────────────────────────────────────────────────

_STATUS_BY_ERROR: list[tuple[type, int]] = [
    (ValidationError, 400),
    (AuthError, 401),
    (InvalidCredentials, 401),
    (UsernameTaken, 409),
    (StorageError, 500),
]


def install_exception_handlers(app: FastAPI) -> None:
    """Render relay errors and malformed request bodies as ``{"error": ...}`` with a matching status code."""

    @app.exception_handler(RelayError)
    async def _relay_error(_request: Request, exc: RelayError):
        for error_type, status in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                break
        else:
            status = 500
        if status >= 500:
            logger.error(f"[HTTP] {type(exc).__name__}: {exc}")
            detail = "storage failure" if isinstance(exc, StorageError) else "server error"
            return JSONResponse(status_code=status, content={"error": detail})
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(_request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err.get("loc", ())[1:]) or "body" for err in exc.errors()]
        detail = f"invalid request: {', '.join(dict.fromkeys(fields))}"
        logger.debug(f"[HTTP] {detail}")
        return JSONResponse(status_code=400, content={"error": detail})


# ── Router ──────────────────────────────────────────────────────────

def build_http_router(hub: RelayHub) -> APIRouter:
    """Build the APIRouter with auth, message, stats and WebSocket endpoints."""
    router = APIRouter()

    def require_identity(authorization: Optional[str] = Header(None)) -> Identity:
        return hub.authenticator.authenticate(authorization)

    def optional_identity(authorization: Optional[str] = Header(None)) -> Optional[Identity]:
        if authorization is None:
            return None
        return hub.authenticator.authenticate(authorization)

    # ---- Identity ----

    @router.post(API_REGISTER, response_model=AuthResponse)
    async def register(payload: CredentialsPayload):
        user = hub.identity_store.create_user(payload.username, payload.password, payload.email or "")
        token = hub.codec.issue_token(user.id, user.username)
        return AuthResponse(token=token, user=user)

    @router.post(API_LOGIN, response_model=AuthResponse)
    async def login(payload: CredentialsPayload):
        user = hub.identity_store.verify_user(payload.username, payload.password)
        token = hub.codec.issue_token(user.id, user.username)
        logger.info(f"[AUTH] User {user.username} logged in")
        return AuthResponse(token=token, user=user)

    # ---- Messages & stats ----

    @router.get(API_MESSAGES, response_model=list[Message])
    async def read_messages(_identity: Identity = Depends(require_identity)):
        return await hub.service.read_messages()

    @router.post(API_MESSAGES, response_model=PostMessageResponse)
    async def post_message(payload: PostMessagePayload,
                           identity: Optional[Identity] = Depends(optional_identity)):
        message = await hub.service.post_message(
            payload.content, anonymous=payload.is_anonymous, identity=identity,
        )
        return PostMessageResponse(message=message)

    @router.get(API_STATS)
    async def stats():
        return hub.service.stats()

    # ---- WebSocket relay endpoint ----

    @router.websocket(WS_PATH)
    async def websocket_relay(ws: WebSocket, token: Optional[str] = None):
        identity = hub.authenticator.try_authenticate_token(token)
        await ws.accept()

        connection = Connection(ws, identity, outbox_size=hub.config.outbox_size)
        connection.start()
        handle = hub.registry.register(connection)
        logger.info(f"[WS] Client connected as {identity.username if identity else 'anonymous'} ({handle})")

        try:
            while True:
                frame = await ws.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                text = frame.get("text")
                if text is None:
                    # binary frame
                    _reply_invalid_json(connection)
                    continue
                try:
                    msg = json.loads(text)
                except json.JSONDecodeError:
                    _reply_invalid_json(connection)
                    continue
                _handle_client_message(hub, handle, connection, msg)

        except WebSocketDisconnect:
            logger.info(f"[WS] Client disconnected ({handle})")
        except Exception as e:
            logger.error(f"[WS] Error on connection {handle}: {type(e).__name__}: {e}")
        finally:
            hub.registry.unregister(handle)
            await connection.close()

    return router


def _handle_client_message(hub: RelayHub, handle: str, connection: Connection, msg: Any) -> None:
    """Dispatch one inbound client frame."""
    msg_type = msg.get("type", "") if isinstance(msg, dict) else ""

    if msg_type == "ping":
        hub.registry.mark_alive(handle)
        connection.enqueue(json.dumps({"type": "pong"}))

    elif msg_type == "pong":
        hub.registry.mark_alive(handle)

    else:
        logger.warning(f"[WS] Unknown message type: {msg_type!r}")


def _reply_invalid_json(connection: Connection) -> None:
    connection.enqueue(json.dumps({"type": "error", "error_type": "InvalidJSON", "message": "Invalid JSON"}))
