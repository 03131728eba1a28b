# melody

A small framework for WebSocket servers built on aiohttp. Melody keeps track
of every connected session and gives you one place to react to connects,
messages, pongs, close frames, errors and disconnects. It can broadcast to
all sessions, to a filtered subset, or to everyone except one session.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## A broadcasting echo server

```python
from aiohttp import web

from melody.melody import Melody

m = Melody()


@m.handle_message
def on_message(session, msg):
    m.broadcast(msg)


async def websocket(request):
    return await m.handle_request(request)


app = web.Application()
app.router.add_get("/ws", websocket)
web.run_app(app, port=5000)
```

## Melody

`melody.melody.Melody(config=None)` is the session manager. Handlers may be
plain functions or coroutine functions, and every `handle_*` method returns
the function it was given, so each can be used as a decorator:

- `handle_connect(fn)`: `fn(session)` when a session connects
- `handle_disconnect(fn)`: `fn(session)` after a session has disconnected
- `handle_message(fn)` / `handle_message_binary(fn)`: `fn(session, msg)` for
  each incoming text (`str`) or binary (`bytes`) message
- `handle_sent_message(fn)` / `handle_sent_message_binary(fn)`:
  `fn(session, msg)` after a message has been written to the peer
- `handle_pong(fn)`: `fn(session)` when a pong arrives
- `handle_error(fn)`: `fn(session, error)` when a session runs into an error
- `handle_close(fn)`: `fn(session, code, text)` when the peer sends a close
  frame. Without a close handler the close frame is answered with one of
  its own. Passing `None` keeps the current handler.

`await handle_request(request)` upgrades an aiohttp request to a WebSocket,
serves it until it disconnects and returns the `WebSocketResponse`;
`handle_request_with_keys(request, keys)` does the same with the session's
keys set to `keys`. If `check_origin` is set to a callable (plain or async)
that returns false for the request, `aiohttp.web.HTTPForbidden` is raised
instead; by default every origin is accepted.

Sending to many sessions at once (messages may be `str` or `bytes`):

- `broadcast(msg)` and `broadcast_binary(msg)`
- `broadcast_filter(msg, fn)` and `broadcast_binary_filter(msg, fn)`: only to
  sessions for which `fn(session)` is true
- `broadcast_others(msg, session)` and `broadcast_binary_others(msg, session)`
- `broadcast_multiple(msg, sessions)`: writes to each session in turn and
  stops at the first `SessionClosedError`

`sessions()` returns the connected sessions and `len(m)` their number.
`close()` and `close_with_msg(msg)` close every session and shut the instance
down; `is_closed()` reports whether that has happened.
`format_close_message(close_code, text)` builds a close payload, and
`CloseCode` lists the close codes of RFC 6455.

Once closed, `handle_request`, the broadcast methods (except
`broadcast_multiple`), `sessions()`, `close()` and `close_with_msg()` raise
`melody.errors.ClosedError`.

## Session

Each connection is a `melody.session.Session`. Its `request` attribute is the
aiohttp request it came from and `keys` its dict of stored values.

- `write(msg)` / `write_binary(msg)` queue a message for the peer
- `close()` / `close_with_msg(msg)` queue a close frame; the session closes
  once it has been sent
- `set(key, value)`, `get(key, default=None)`, `must_get(key)` (raises
  `KeyError` when the key is missing) and `unset(key)` manage per-session
  values
- `is_closed()`, `local_addr()`, `remote_addr()` and `websocket_connection()`
  describe the connection; the two address methods return the socket address
  or `None` when it is unknown

Writing to or closing a closed session raises
`melody.errors.SessionClosedError`. When a session's outgoing buffer is full
the message is dropped and the error handler receives a
`MessageBufferFullError`. All errors derive from `melody.errors.MelodyError`.

## Configuration

`melody.config.Config` is a dataclass; pass one to `Melody(config)` or change
`m.config` before sessions connect:

| field | default | meaning |
| --- | --- | --- |
| `write_wait` | `10.0` | seconds allowed for one write |
| `pong_wait` | `60.0` | seconds allowed between pongs before the read times out |
| `ping_period` | `54.0` | seconds between pings sent to the peer |
| `max_message_size` | `512` | largest incoming message in bytes; larger ones close the session with code 1009 |
| `message_buffer_size` | `256` | queued outgoing messages per session |
| `concurrent_message_handling` | `False` | run message handlers concurrently instead of one after another |

Clients must answer pings, or the session is dropped after `pong_wait`.

## Demo servers

`melody.apps` builds ready-made aiohttp applications on a `Melody` instance:

- `make_chat_app(melody)`: every text message goes to every session
  (`/` and `/ws`)
- `make_gophers_app(melody)`: each session gets a numeric id and is sent
  `iam <id>`; its messages reach the others as `set <id> <msg>`, and its
  departure as `dis <id>`
- `make_multichat_app(melody)`: channels at `/channel/{chan}`, with the
  WebSocket at `/channel/{chan}/ws`; messages reach only sessions on the same
  channel
- `make_filewatch_app(melody, path="file.txt", interval=1.0)`: sends the
  file's contents on connect and broadcasts them whenever the file changes,
  checking every `interval` seconds

Once the `Melody` instance is closed, their WebSocket routes answer with
503 Service Unavailable.

Serve one of them from the command line:

```
melody chat
melody gophers --port 8080
melody multichat --host 127.0.0.1
melody filewatch --file notes.txt --interval 0.5
```

`--host` defaults to `0.0.0.0` and `--port` to `5000`. See `melody --help`.

## What is not included

The demo servers serve `index.html` (and, for multichat, `chan.html`) from
the current directory, but the package ships no such pages: supply your own
browser client, or connect with any WebSocket client to the WebSocket routes.