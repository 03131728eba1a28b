"""WebSocket session management on aiohttp: handlers, broadcasting, sessions and demo servers."""

__version__ = "1.2.0"