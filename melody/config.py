"""Tunable settings shared by every session of a Melody instance."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Config:
    """Timeouts are in seconds, sizes in bytes or messages."""

    write_wait: float = 10.0
    """Time allowed for a single write to complete."""
    pong_wait: float = 60.0
    """Time allowed between pongs before a read times out."""
    ping_period: float = 54.0
    """Interval between pings sent to the peer."""
    max_message_size: int = 512
    """Largest message accepted from a peer."""
    message_buffer_size: int = 256
    """Queued outgoing messages per session before new ones are dropped."""
    concurrent_message_handling: bool = False
    """Run message handlers concurrently instead of one after another."""