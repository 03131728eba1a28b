"""The Melody manager: upgrades requests and routes messages between sessions."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import Any, Awaitable, Callable, Iterable

from aiohttp import web

from .config import Config
from .errors import ClosedError
from .hub import Envelope, Hub, MessageType
from .session import Session, _invoke

_log = logging.getLogger(__name__)


class CloseCode(enum.IntEnum):
    """Close codes defined in RFC 6455, section 11.7."""

    NORMAL_CLOSURE = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002
    UNSUPPORTED_DATA = 1003
    NO_STATUS_RECEIVED = 1005
    ABNORMAL_CLOSURE = 1006
    INVALID_FRAME_PAYLOAD_DATA = 1007
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    MANDATORY_EXTENSION = 1010
    INTERNAL_SERVER_ERR = 1011
    SERVICE_RESTART = 1012
    TRY_AGAIN_LATER = 1013
    TLS_HANDSHAKE = 1015


def _unhandled(event: str) -> Callable[..., None]:
    """Return a default handler that records the event in the debug log."""

    def handler(*args: Any) -> None:
        _log.debug("no %s handler set; ignoring %r", event, args)

    handler.__name__ = f"unhandled_{event}"
    return handler


class Melody:
    """A WebSocket manager holding handlers, configuration and live sessions.

    Handlers may be plain functions or coroutine functions. The handle_*
    methods return the handler, so they can be used as decorators.
    Setting check_origin to a callable restricts which requests are upgraded;
    when it is None every origin is accepted.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config if config is not None else Config()
        self.check_origin: Callable[[Any], bool | Awaitable[bool]] | None = None
        self.message_handler: Callable = _unhandled("message")
        self.message_handler_binary: Callable = _unhandled("binary message")
        self.message_sent_handler: Callable = _unhandled("sent message")
        self.message_sent_handler_binary: Callable = _unhandled("sent binary message")
        self.error_handler: Callable = _unhandled("error")
        self.close_handler: Callable | None = None
        self.connect_handler: Callable = _unhandled("connect")
        self.disconnect_handler: Callable = _unhandled("disconnect")
        self.pong_handler: Callable = _unhandled("pong")
        self._hub = Hub()

    # -- handler registration ------------------------------------------------

    def handle_connect(self, fn):
        """Call fn(session) when a session connects."""
        self.connect_handler = fn
        return fn

    def handle_disconnect(self, fn):
        """Call fn(session) when a session disconnects."""
        self.disconnect_handler = fn
        return fn

    def handle_pong(self, fn):
        """Call fn(session) when a pong arrives from a session."""
        self.pong_handler = fn
        return fn

    def handle_message(self, fn):
        """Call fn(session, msg) for each incoming text message."""
        self.message_handler = fn
        return fn

    def handle_message_binary(self, fn):
        """Call fn(session, msg) for each incoming binary message."""
        self.message_handler_binary = fn
        return fn

    def handle_sent_message(self, fn):
        """Call fn(session, msg) after a text message has been sent."""
        self.message_sent_handler = fn
        return fn

    def handle_sent_message_binary(self, fn):
        """Call fn(session, msg) after a binary message has been sent."""
        self.message_sent_handler_binary = fn
        return fn

    def handle_error(self, fn):
        """Call fn(session, error) when a session runs into an error."""
        self.error_handler = fn
        return fn

    def handle_close(self, fn):
        """Call fn(session, code, text) when a close frame arrives.

        Without a close handler a close frame is echoed back to the peer.
        Passing None leaves the current handler in place.
        """
        if fn is not None:
            self.close_handler = fn
        return fn

    # -- connections -------------------------------------------------------------

    async def handle_request(self, request):
        """Upgrade request to a WebSocket and serve it until it disconnects."""
        return await self.handle_request_with_keys(request, None)

    async def handle_request_with_keys(self, request, keys: dict[str, Any] | None):
        """Like handle_request, with the session's keys set to keys."""
        if self._hub.closed():
            raise ClosedError()
        if self.check_origin is not None and not await _invoke(self.check_origin, request):
            raise web.HTTPForbidden(text="origin not allowed")

        conn = web.WebSocketResponse(autoping=False, autoclose=False, max_msg_size=0)
        await conn.prepare(request)

        session = Session(request, keys, conn, self)
        self._hub.register(session)
        await _invoke(self.connect_handler, session)

        writer = asyncio.ensure_future(session._write_pump())
        try:
            await session._read_pump()
        finally:
            if not self._hub.closed():
                self._hub.unregister(session)
            await session._shutdown()
            with contextlib.suppress(Exception):
                await writer

        await _invoke(self.disconnect_handler, session)
        return conn

    # -- broadcasting --------------------------------------------------------------

    def _broadcast(self, kind: MessageType, msg, fn=None) -> None:
        if self._hub.closed():
            raise ClosedError()
        self._hub.broadcast(Envelope(kind, msg, fn))

    def broadcast(self, msg) -> None:
        """Send a text message to every session."""
        self._broadcast(MessageType.TEXT, msg)

    def broadcast_filter(self, msg, fn: Callable[[Session], bool]) -> None:
        """Send a text message to every session for which fn returns true."""
        self._broadcast(MessageType.TEXT, msg, fn)

    def broadcast_others(self, msg, session: Session) -> None:
        """Send a text message to every session except session."""
        self.broadcast_filter(msg, lambda other: other is not session)

    def broadcast_multiple(self, msg, sessions: Iterable[Session]) -> None:
        """Send a text message to each of sessions, stopping at the first error."""
        for session in sessions:
            session.write(msg)

    def broadcast_binary(self, msg) -> None:
        """Send a binary message to every session."""
        self._broadcast(MessageType.BINARY, msg)

    def broadcast_binary_filter(self, msg, fn: Callable[[Session], bool]) -> None:
        """Send a binary message to every session for which fn returns true."""
        self._broadcast(MessageType.BINARY, msg, fn)

    def broadcast_binary_others(self, msg, session: Session) -> None:
        """Send a binary message to every session except session."""
        self.broadcast_binary_filter(msg, lambda other: other is not session)

    # -- state -------------------------------------------------------------------------

    def sessions(self) -> list[Session]:
        """Return the connected sessions."""
        if self._hub.closed():
            raise ClosedError()
        return self._hub.all()

    def close(self) -> None:
        """Close the instance and every connected session."""
        self.close_with_msg(b"")

    def close_with_msg(self, msg: bytes) -> None:
        """Close the instance and every session with a close payload."""
        if self._hub.closed():
            raise ClosedError()
        self._hub.exit(Envelope(MessageType.CLOSE, msg))

    def __len__(self) -> int:
        return len(self._hub)

    def is_closed(self) -> bool:
        return self._hub.closed()


def format_close_message(close_code: int, text: str | bytes) -> bytes:
    """Build a close frame payload from a close code and a reason."""
    if close_code == CloseCode.NO_STATUS_RECEIVED:
        return b""
    reason = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    return int(close_code).to_bytes(2, "big") + reason