"""Ready-made applications built on Melody, and a command to serve them."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import itertools
import os
from pathlib import Path
from typing import Awaitable, Callable

from aiohttp import web

from .errors import ClosedError
from .melody import Melody
from .session import Session

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _serve_file(filename: str) -> Handler:
    async def handler(_request: web.Request) -> web.StreamResponse:
        return web.FileResponse(filename)

    return handler


def _websocket_handler(melody: Melody) -> Handler:
    async def handler(request: web.Request) -> web.StreamResponse:
        try:
            return await melody.handle_request(request)
        except ClosedError as exc:
            raise web.HTTPServiceUnavailable(text=str(exc)) from exc

    return handler


def _as_text(msg: bytes | str) -> str:
    return msg if isinstance(msg, str) else bytes(msg).decode("utf-8", "replace")


def make_chat_app(melody: Melody) -> web.Application:
    """A chat room: every text message is broadcast to every session."""

    @melody.handle_message
    def _relay(_session: Session, msg) -> None:
        with contextlib.suppress(ClosedError):
            melody.broadcast(msg)

    app = web.Application()
    app.router.add_get("/", _serve_file("index.html"))
    app.router.add_get("/ws", _websocket_handler(melody))
    return app


def make_gophers_app(melody: Melody) -> web.Application:
    """Shared positions: each session gets an id and its moves go to the others."""
    ids = itertools.count(1)

    @melody.handle_connect
    def _connect(session: Session) -> None:
        session_id = next(ids)
        session.set("id", session_id)
        session.write(f"iam {session_id}")

    @melody.handle_disconnect
    def _disconnect(session: Session) -> None:
        session_id = session.get("id")
        if session_id is not None:
            with contextlib.suppress(ClosedError):
                melody.broadcast_others(f"dis {session_id}", session)

    @melody.handle_message
    def _message(session: Session, msg) -> None:
        session_id = session.get("id")
        if session_id is not None:
            with contextlib.suppress(ClosedError):
                melody.broadcast_others(f"set {session_id} {_as_text(msg)}", session)

    app = web.Application()
    app.router.add_get("/", _serve_file("index.html"))
    app.router.add_get("/ws", _websocket_handler(melody))
    return app


def make_multichat_app(melody: Melody) -> web.Application:
    """Chat rooms by channel: messages reach only sessions on the same path."""

    @melody.handle_message
    def _relay(session: Session, msg) -> None:
        path = session.request.path
        with contextlib.suppress(ClosedError):
            melody.broadcast_filter(msg, lambda other: other.request.path == path)

    app = web.Application()
    app.router.add_get("/", _serve_file("index.html"))
    app.router.add_get("/channel/{chan}", _serve_file("chan.html"))
    app.router.add_get("/channel/{chan}/ws", _websocket_handler(melody))
    return app


def _file_state(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError:
        return b""


def make_filewatch_app(
    melody: Melody, path: str | os.PathLike = "file.txt", interval: float = 1.0
) -> web.Application:
    """Show a file live: sent on connect, and broadcast whenever it changes."""
    watched = Path(path)

    @melody.handle_connect
    def _connect(session: Session) -> None:
        session.write(_read(watched))

    async def _poll() -> None:
        last = _file_state(watched)
        while True:
            await asyncio.sleep(interval)
            current = _file_state(watched)
            if current == last:
                continue
            last = current
            if current is not None:
                with contextlib.suppress(ClosedError):
                    melody.broadcast(_read(watched))

    async def _watch(_app: web.Application):
        task = asyncio.ensure_future(_poll())
        yield
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    app = web.Application()
    app.cleanup_ctx.append(_watch)
    app.router.add_get("/", _serve_file("index.html"))
    app.router.add_get("/ws", _websocket_handler(melody))
    return app


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="melody", description="Serve a Melody application.")
    parser.add_argument(
        "app", choices=("chat", "gophers", "multichat", "filewatch"), help="application to serve"
    )
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=5000, help="port to listen on")
    parser.add_argument("--file", default="file.txt", help="file watched by filewatch")
    parser.add_argument(
        "--interval", type=float, default=1.0, help="seconds between file checks"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the chosen application until interrupted."""
    args = _parser().parse_args(argv)
    melody = Melody()
    if args.app == "chat":
        app = make_chat_app(melody)
    elif args.app == "gophers":
        app = make_gophers_app(melody)
    elif args.app == "multichat":
        app = make_multichat_app(melody)
    else:
        app = make_filewatch_app(melody, args.file, args.interval)
    web.run_app(app, host=args.host, port=args.port)
    return 0