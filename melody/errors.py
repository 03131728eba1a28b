"""Exceptions raised by Melody and its sessions."""

from __future__ import annotations


class MelodyError(Exception):
    """Base class for all errors raised by this package."""

    default_message = "melody error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class ClosedError(MelodyError):
    """The Melody instance has been closed."""

    default_message = "melody instance is closed"


class SessionClosedError(MelodyError):
    """The session has been closed."""

    default_message = "session is closed"


class WriteClosedError(MelodyError):
    """A write was attempted on a closed session."""

    default_message = "tried to write to closed a session"


class MessageBufferFullError(MelodyError):
    """The session's outgoing buffer is full; the message was dropped."""

    default_message = "session message buffer is full"