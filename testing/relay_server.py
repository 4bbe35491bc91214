"""Tools for running a local relay server for unit tests."""
from __future__ import annotations

import pathlib
from typing import AsyncGenerator
from typing import NamedTuple

import pytest_asyncio
from websockets.asyncio.server import serve
from websockets.asyncio.server import Server

from topicrelay.relay import SignalingRelay
from topicrelay.run import request_router
from topicrelay.static import StaticContentServer
from testing.utils import open_port

INDEX_HTML = b'<!doctype html><title>app</title>'
APP_JS = b'console.log("app")'


class RelayServerInfo(NamedTuple):
    """NamedTuple returned by relay_server fixture."""

    relay: SignalingRelay
    websocket_server: Server
    host: str
    port: int
    address: str
    http_address: str
    static_dir: pathlib.Path


@pytest_asyncio.fixture()
async def relay_server(
    tmp_path: pathlib.Path,
) -> AsyncGenerator[RelayServerInfo, None]:
    """Fixture that runs a relay server locally.

    The server shares one port between the signaling relay on
    `/signaling` and a static content server whose root contains an
    `index.html` and `assets/app.js`.

    Yields:
        `RelayServerInfo <.RelayServerInfo>`
    """
    host = 'localhost'
    port = open_port()

    static_dir = tmp_path / 'dist'
    (static_dir / 'assets').mkdir(parents=True)
    (static_dir / 'index.html').write_bytes(INDEX_HTML)
    (static_dir / 'assets' / 'app.js').write_bytes(APP_JS)

    relay = SignalingRelay()
    async with serve(
        relay.handler,
        host,
        port,
        process_request=request_router(
            StaticContentServer(static_dir),
            '/signaling',
        ),
    ) as websocket_server:
        server_info = RelayServerInfo(
            relay=relay,
            websocket_server=websocket_server,
            host=host,
            port=port,
            address=f'ws://{host}:{port}/signaling',
            http_address=f'http://{host}:{port}',
            static_dir=static_dir,
        )
        assert websocket_server.is_serving()
        yield server_info
