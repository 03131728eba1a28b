"""A session wraps one WebSocket connection and pumps messages through it."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections import deque
from typing import Any

import aiohttp
from aiohttp import WSMsgType

from .errors import MessageBufferFullError, SessionClosedError, WriteClosedError
from .hub import Envelope, MessageType

_CLOSE_NORMAL = 1000
_CLOSE_NO_STATUS = 1005
_CLOSE_ABNORMAL = 1006
_CLOSE_MESSAGE_TOO_BIG = 1009


async def _invoke(fn, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _as_bytes(msg: bytes | str) -> bytes:
    return msg.encode("utf-8") if isinstance(msg, str) else bytes(msg)


def _parse_close_payload(payload: bytes) -> tuple[int, bytes]:
    if len(payload) < 2:
        return _CLOSE_NORMAL, b""
    return int.from_bytes(payload[:2], "big"), payload[2:]


class Session:
    """One connected client.

    The connection is expected to behave like an aiohttp WebSocketResponse
    created with autoping=False and autoclose=False, so that pings, pongs and
    close frames reach the session.
    """

    def __init__(self, request, keys: dict[str, Any] | None, conn, melody) -> None:
        self.request = request
        self.keys = keys
        self._conn = conn
        self._melody = melody
        self._buffer_size = melody.config.message_buffer_size
        self._output: deque[Envelope] = deque()
        self._wakeup = asyncio.Event()
        self._done = asyncio.Event()
        self._pump_waiting = False
        self._open = True
        self._read_deadline = 0.0
        self._tasks: set[asyncio.Future] = set()

    # -- internal plumbing -------------------------------------------------

    def _track(self, future: asyncio.Future) -> None:
        self._tasks.add(future)
        future.add_done_callback(self._tasks.discard)

    def _invoke_soon(self, fn, *args) -> None:
        result = fn(*args)
        if inspect.isawaitable(result):
            self._track(asyncio.ensure_future(result))

    def _write_message(self, envelope: Envelope) -> None:
        if self.is_closed():
            self._invoke_soon(self._melody.error_handler, self, WriteClosedError())
            return
        handoff = self._pump_waiting and not self._output
        if len(self._output) < self._buffer_size or handoff:
            self._output.append(envelope)
            self._pump_waiting = False
            self._wakeup.set()
        else:
            self._invoke_soon(self._melody.error_handler, self, MessageBufferFullError())

    async def _send(self, envelope: Envelope) -> None:
        kind, msg = envelope.kind, envelope.msg
        if kind is MessageType.TEXT:
            await self._conn.send_str(msg if isinstance(msg, str) else bytes(msg).decode("utf-8"))
        elif kind is MessageType.BINARY:
            await self._conn.send_bytes(_as_bytes(msg))
        elif kind is MessageType.CLOSE:
            code, reason = _parse_close_payload(_as_bytes(msg))
            await self._conn.close(code=code, message=reason)
        elif kind is MessageType.PING:
            await self._conn.ping(_as_bytes(msg))
        elif kind is MessageType.PONG:
            await self._conn.pong(_as_bytes(msg))

    async def _write_raw(self, envelope: Envelope) -> None:
        if self.is_closed():
            raise WriteClosedError()
        timeout = self._melody.config.write_wait
        if timeout <= 0:
            raise asyncio.TimeoutError("write deadline exceeded")
        await asyncio.wait_for(self._send(envelope), timeout)

    async def _ping(self) -> None:
        with contextlib.suppress(Exception):
            await self._write_raw(Envelope(MessageType.PING, b""))

    async def _shutdown(self) -> None:
        if not self._open:
            return
        self._open = False
        self._done.set()
        self._wakeup.set()
        with contextlib.suppress(Exception):
            await self._conn.close()

    async def _write_pump(self) -> None:
        loop = asyncio.get_running_loop()
        period = self._melody.config.ping_period
        next_ping = loop.time() + period
        while not self._done.is_set():
            if not self._output:
                self._pump_waiting = True
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(
                        self._wakeup.wait(), max(0.0, next_ping - loop.time())
                    )
                except asyncio.TimeoutError:
                    pass
                finally:
                    self._pump_waiting = False
                if self._done.is_set():
                    break
            now = loop.time()
            if now >= next_ping:
                await self._ping()
                next_ping = now + period
            if not self._output:
                continue
            envelope = self._output.popleft()
            try:
                await self._write_raw(envelope)
            except Exception as exc:
                await _invoke(self._melody.error_handler, self, exc)
                break
            if envelope.kind is MessageType.CLOSE:
                break
            if envelope.kind is MessageType.TEXT:
                await _invoke(self._melody.message_sent_handler, self, envelope.msg)
            elif envelope.kind is MessageType.BINARY:
                await _invoke(self._melody.message_sent_handler_binary, self, envelope.msg)
        await self._shutdown()

    async def _receive(self, loop: asyncio.AbstractEventLoop):
        remaining = self._read_deadline - loop.time()
        if remaining <= 0:
            raise asyncio.TimeoutError("read deadline exceeded")
        return await self._conn.receive(timeout=remaining)

    def _too_big(self, data) -> bool:
        limit = self._melody.config.max_message_size
        size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
        return limit > 0 and size > limit

    async def _on_close(self, msg) -> BaseException:
        code = msg.data or _CLOSE_NO_STATUS
        text = msg.extra or ""
        handler = self._melody.close_handler
        if handler is not None:
            try:
                await _invoke(handler, self, code, text)
            except Exception as exc:
                return exc
        else:
            reply = _CLOSE_NORMAL if code == _CLOSE_NO_STATUS else code
            with contextlib.suppress(Exception):
                await self._conn.close(code=reply)
        return aiohttp.WebSocketError(code, text)

    async def _process(self, msg, loop) -> BaseException | None:
        kind = msg.type
        if kind in (WSMsgType.TEXT, WSMsgType.BINARY):
            if self._too_big(msg.data):
                with contextlib.suppress(Exception):
                    await self._conn.close(code=_CLOSE_MESSAGE_TOO_BIG)
                return aiohttp.WebSocketError(_CLOSE_MESSAGE_TOO_BIG, "read limit exceeded")
            if self._melody.config.concurrent_message_handling:
                self._track(asyncio.ensure_future(self._handle_message(kind, msg.data)))
            else:
                await self._handle_message(kind, msg.data)
            return None
        if kind == WSMsgType.PING:
            with contextlib.suppress(Exception):
                await self._conn.pong(msg.data)
            return None
        if kind == WSMsgType.PONG:
            self._read_deadline = loop.time() + self._melody.config.pong_wait
            await _invoke(self._melody.pong_handler, self)
            return None
        if kind == WSMsgType.CLOSE:
            return await self._on_close(msg)
        if kind == WSMsgType.ERROR and isinstance(msg.data, BaseException):
            return msg.data
        return aiohttp.WebSocketError(_CLOSE_ABNORMAL, "connection closed")

    async def _read_pump(self) -> None:
        loop = asyncio.get_running_loop()
        self._read_deadline = loop.time() + self._melody.config.pong_wait
        while True:
            try:
                msg = await self._receive(loop)
            except Exception as exc:
                error: BaseException | None = exc
            else:
                error = await self._process(msg, loop)
            if error is not None:
                await _invoke(self._melody.error_handler, self, error)
                return

    async def _handle_message(self, kind, data) -> None:
        if kind == WSMsgType.TEXT:
            await _invoke(self._melody.message_handler, self, data)
        elif kind == WSMsgType.BINARY:
            await _invoke(self._melody.message_handler_binary, self, data)

    # -- public API ----------------------------------------------------------

    def write(self, msg: bytes | str) -> None:
        """Queue a text message."""
        if self.is_closed():
            raise SessionClosedError()
        self._write_message(Envelope(MessageType.TEXT, msg))

    def write_binary(self, msg: bytes | str) -> None:
        """Queue a binary message."""
        if self.is_closed():
            raise SessionClosedError()
        self._write_message(Envelope(MessageType.BINARY, msg))

    def close(self) -> None:
        """Queue a close frame; the session closes once it is sent."""
        if self.is_closed():
            raise SessionClosedError()
        self._write_message(Envelope(MessageType.CLOSE, b""))

    def close_with_msg(self, msg: bytes) -> None:
        """Queue a close frame with a payload made by format_close_message."""
        if self.is_closed():
            raise SessionClosedError()
        self._write_message(Envelope(MessageType.CLOSE, msg))

    def set(self, key: str, value: Any) -> None:
        if self.keys is None:
            self.keys = {}
        self.keys[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        if self.keys is None:
            return default
        return self.keys.get(key, default)

    def must_get(self, key: str) -> Any:
        if self.keys is not None and key in self.keys:
            return self.keys[key]
        raise KeyError(f'Key "{key}" does not exist')

    def unset(self, key: str) -> None:
        if self.keys is not None:
            self.keys.pop(key, None)

    def is_closed(self) -> bool:
        return not self._open

    def _extra_info(self, name: str):
        transport = getattr(self.request, "transport", None)
        return transport.get_extra_info(name) if transport is not None else None

    def local_addr(self):
        """Local socket address of the connection, or None if unknown."""
        return self._extra_info("sockname")

    def remote_addr(self):
        """Peer socket address of the connection, or None if unknown."""
        return self._extra_info("peername")

    def websocket_connection(self):
        """The underlying WebSocket connection."""
        return self._conn