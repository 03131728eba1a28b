"""The registry of live sessions and the messages sent to them."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable

from .errors import SessionClosedError


class MessageType(enum.IntEnum):
    """WebSocket frame opcodes used for outgoing messages."""

    TEXT = 1
    BINARY = 2
    CLOSE = 8
    PING = 9
    PONG = 10


@dataclass(frozen=True)
class Envelope:
    """An outgoing message, optionally limited to sessions a filter accepts."""

    kind: MessageType
    msg: bytes | str = b""
    filter: Callable[[Any], bool] | None = None


class Hub:
    """Keeps track of connected sessions and fans messages out to them."""

    def __init__(self) -> None:
        self._sessions: dict[Any, None] = {}
        self._open = True

    def closed(self) -> bool:
        return not self._open

    def __len__(self) -> int:
        return len(self._sessions)

    def all(self) -> list:
        """Return a snapshot of the registered sessions."""
        return list(self._sessions)

    def register(self, session) -> None:
        self._sessions[session] = None

    def unregister(self, session) -> None:
        self._sessions.pop(session, None)

    def exit(self, envelope: Envelope) -> None:
        """Send envelope to every session, close them all and shut the hub."""
        for session in list(self._sessions):
            session._write_message(envelope)
            try:
                session.close()
            except SessionClosedError:
                pass
        self._sessions = {}
        self._open = False

    def broadcast(self, envelope: Envelope) -> None:
        """Queue envelope on every session its filter accepts."""
        for session in list(self._sessions):
            if envelope.filter is None or envelope.filter(session):
                session._write_message(envelope)