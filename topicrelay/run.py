"""CLI and serving functions for running the relay server."""
from __future__ import annotations

import asyncio
import contextlib
import datetime
import email.utils
import http
import logging
import logging.handlers
import os
import pprint
import signal
import ssl
import sys
import urllib.parse
from typing import Any
from typing import Awaitable
from typing import Callable

import click
from websockets.asyncio.server import serve as websockets_serve
from websockets.asyncio.server import ServerConnection
from websockets.datastructures import Headers
from websockets.http11 import Request
from websockets.http11 import Response

from topicrelay.config import RelayServingConfig
from topicrelay.relay import SignalingRelay
from topicrelay.static import StaticContentServer
from topicrelay.static import StaticResponse
from topicrelay.utils.config import dumps
from topicrelay.utils.tasks import background_task

logger = logging.getLogger(__name__)

ProcessRequest = Callable[
    [ServerConnection, Request],
    Awaitable['Response | None'],
]


async def periodic_topic_logger(
    relay: SignalingRelay,
    interval: float = 60,
    limit: float | None = 32,
    level: int = logging.INFO,
) -> None:
    """Log current connections and topics forever.

    Intended to be run with
    [`background_task()`][topicrelay.utils.tasks.background_task].

    Args:
        relay: Relay instance to log the state of.
        interval: Seconds between logging.
        limit: Only log the detailed topic list if the number of topics is
            less than this number. Useful for debugging or avoiding
            clobbering the logs by printing thousands of topics.
        level: Logging level.
    """
    while True:
        await asyncio.sleep(interval)
        manager = relay.topic_manager
        connections = manager.get_connections()
        topics = sorted(manager.get_topics())
        message = f'Connections: {len(connections)}, topics: {len(topics)}'
        if limit is not None and 0 < len(topics) < limit:
            details = '\n'.join(
                f'{topic}: {len(manager.get_members(topic))} member(s)'
                for topic in topics
            )
            message = f'{message}\n{details}'
        logger.log(level, message)


def static_response(response: StaticResponse) -> Response:
    """Convert a static content response into an HTTP response."""
    status = http.HTTPStatus(response.status)
    headers = Headers(
        [
            ('Date', email.utils.formatdate(usegmt=True)),
            ('Connection', 'close'),
            ('Content-Type', response.content_type),
            ('Content-Length', str(len(response.body))),
        ],
    )
    return Response(status.value, status.phrase, headers, response.body)


def request_router(
    static_server: StaticContentServer,
    signaling_path: str,
) -> ProcessRequest:
    """Create a request hook that shares one listener between components.

    Requests for `signaling_path` continue to the websocket handshake and
    are handled by the signaling relay. Any other request is answered with
    a file from the static content server before any handshake happens.

    Args:
        static_server: Server for every non-signaling request.
        signaling_path: Path upgraded to the signaling protocol. The query
            string is ignored when matching.

    Returns:
        Hook to pass as `process_request` to
        [`websockets.asyncio.server.serve()`][websockets.asyncio.server.serve].
    """

    async def process_request(
        connection: ServerConnection,
        request: Request,
    ) -> Response | None:
        if urllib.parse.urlsplit(request.path).path == signaling_path:
            return None

        response = await asyncio.to_thread(static_server.load, request.path)
        logger.debug(
            f'GET {request.path} from {connection.remote_address}: '
            f'{response.status}',
        )
        return static_response(response)

    return process_request


async def serve(config: RelayServingConfig) -> None:
    """Run the relay server.

    Initializes a [`SignalingRelay`][topicrelay.relay.SignalingRelay]
    and a [`StaticContentServer`][topicrelay.static.StaticContentServer]
    and starts a websocket server, listening on a single port, that hands
    connections on the signaling path to the relay and answers all other
    requests with static files.

    Note:
        This function will not configure any logging. Configuring logging
        according to
        [`RelayServingConfig.logging`][topicrelay.config.RelayServingConfig]
        is the responsibility of the caller.

    Args:
        config: Serving configuration.
    """
    relay = SignalingRelay()
    static_server = StaticContentServer(config.static_dir, config.index)

    # Set the stop condition when receiving SIGINT (ctrl-C) and SIGTERM.
    loop = asyncio.get_running_loop()
    stop = loop.create_future()
    loop.add_signal_handler(signal.SIGINT, stop.set_result, None)
    loop.add_signal_handler(signal.SIGTERM, stop.set_result, None)

    ssl_context: ssl.SSLContext | None = None
    if config.certfile is not None:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.certfile, keyfile=config.keyfile)

    topic_logger: contextlib.AbstractAsyncContextManager[Any] = (
        contextlib.nullcontext()
    )
    if config.logging.current_topic_interval is not None:  # pragma: no branch
        level = (
            config.logging.default_level
            if isinstance(config.logging.default_level, int)
            else logging.getLevelName(config.logging.default_level)
        )
        topic_logger = background_task(
            periodic_topic_logger(
                relay,
                config.logging.current_topic_interval,
                config.logging.current_topic_limit,
                level=level,
            ),
            name='relay-server-topic-logger',
        )

    config_repr = pprint.pformat(config, indent=2)
    logger.info(f'Relay serving configuration:\n{config_repr}')

    async with topic_logger, websockets_serve(
        relay.handler,
        config.host,
        config.port,
        process_request=request_router(
            static_server,
            config.signaling_path,
        ),
        ssl=ssl_context,
        max_size=config.max_message_bytes,
        ping_interval=config.ping_interval,
        ping_timeout=config.ping_timeout,
    ):
        http_scheme, ws_scheme = (
            ('http', 'ws') if ssl_context is None else ('https', 'wss')
        )
        logger.info(f'Relay server listening on port {config.port}')
        logger.info(f'App: {http_scheme}://localhost:{config.port}/')
        logger.info(
            f'Signaling: {ws_scheme}://localhost:{config.port}'
            f'{config.signaling_path}',
        )
        logger.info('Use ctrl-C to stop')
        await stop

    loop.remove_signal_handler(signal.SIGINT)
    loop.remove_signal_handler(signal.SIGTERM)

    logger.info('Relay server shutdown')


@click.command()
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option(
    '--port',
    type=int,
    metavar='PORT',
    envvar='PORT',
    help='Port to bind to. Defaults to the PORT environment variable.',
)
@click.option(
    '--static-dir',
    metavar='PATH',
    help='Directory of the built application to serve.',
)
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
@click.option(
    '--dump-config',
    is_flag=True,
    help='Print the effective configuration as TOML and exit.',
)
def cli(
    config_path: str | None,
    host: str | None,
    port: int | None,
    static_dir: str | None,
    log_dir: str | None,
    log_level: str | None,
    dump_config: bool,
) -> None:
    """Run a relay server instance.

    The relay server lets peers meet on named topics to exchange the
    messages needed to establish peer-to-peer connections, and serves the
    application bundle on the same port. If no configuration file is
    provided, a default configuration will be created from
    [`RelayServingConfig()`][topicrelay.config.RelayServingConfig].
    The remaining CLI options will override the options provided in the
    configuration object.
    """
    config = (
        RelayServingConfig()
        if config_path is None
        else RelayServingConfig.from_toml(config_path)
    )

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if static_dir is not None:
        config.static_dir = static_dir
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = logging.getLevelName(
            log_level.upper(),
        )

    if dump_config:
        click.echo(dumps(config), nl=False)
        return

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.log_dir is not None:
        os.makedirs(config.logging.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.logging.log_dir, 'server.log'),
                # Rotate logs Sunday at midnight
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=(
            '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: '
            '%(message)s'
        ),
        datefmt='%Y-%m-%d %H:%M:%S',
        level=config.logging.default_level,
        handlers=handlers,
    )

    logging.getLogger('websockets').setLevel(config.logging.websockets_level)

    asyncio.run(serve(config))
