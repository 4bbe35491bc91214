"""Relay server configuration file parsing."""

from __future__ import annotations

import logging
import pathlib
import sys

if sys.version_info >= (3, 11):  # pragma: >=3.11 cover
    from typing import Self
else:  # pragma: <3.11 cover
    from typing_extensions import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from topicrelay.utils.config import load


class RelayLoggingConfig(BaseModel):
    """Relay logging configuration.

    Attributes:
        log_dir: Default logging directory.
        default_level: Default logging level for the root logger.
        websockets_level: Log level for the `websockets` logger. Websockets
            logs with much higher frequency so it is suggested to set this
            to `WARNING` or higher.
        current_topic_interval: Optional seconds between logging the
            number of current connections and topics.
        current_topic_limit: Max threshold for enumerating the detailed
            list of topics and their member counts. If `None`, no detailed
            list will be logged.
    """

    model_config = ConfigDict(extra='forbid')

    log_dir: str | None = None
    default_level: int | str = logging.INFO
    websockets_level: int | str = logging.WARNING
    current_topic_interval: int | None = 60
    current_topic_limit: int | None = 32


class RelayServingConfig(BaseModel):
    """Relay serving configuration.

    Attributes:
        host: Network interface the server binds to.
        port: Network port the server binds to.
        static_dir: Directory of the built application served over HTTP.
        index: Entry document of the application, relative to
            `static_dir`, served for unknown paths.
        signaling_path: Request path upgraded to the signaling protocol.
        certfile: Certificate file (PEM format) use to enable TLS.
        keyfile: Private key file. If not specified, the key will be
            taken from the certfile.
        max_message_bytes: Maximum size in bytes of frames received by
            the relay. Connections sending larger frames are closed. If
            `None`, frame size is unlimited.
        ping_interval: Seconds between websocket keepalive pings sent by
            the server. If `None`, keepalive is disabled.
        ping_timeout: Seconds to wait for a keepalive pong before closing
            the connection.
        logging: Logging configuration.
    """

    model_config = ConfigDict(extra='forbid')

    host: str = '0.0.0.0'
    port: int = 3000
    static_dir: str = 'dist'
    index: str = 'index.html'
    signaling_path: str = '/signaling'
    certfile: str | None = None
    keyfile: str | None = None
    max_message_bytes: int | None = 2**20
    ping_interval: float | None = 20
    ping_timeout: float | None = 20
    logging: RelayLoggingConfig = Field(default_factory=RelayLoggingConfig)

    @classmethod
    def from_toml(cls, filepath: str | pathlib.Path) -> Self:
        """Parse a TOML config file.

        Example:
            Minimal config serving the bundle in `/srv/app/dist`.
            ```toml title="relay.toml"
            port = 3000
            static_dir = "/srv/app/dist"

            [logging]
            log_dir = "/var/log/topicrelay"
            default_level = "INFO"
            websockets_level = "WARNING"
            current_topic_interval = 60
            current_topic_limit = 32
            ```

            ```python
            from topicrelay.config import RelayServingConfig

            config = RelayServingConfig.from_toml('relay.toml')
            ```

        Example:
            Serve with TLS.
            ```toml title="relay.toml"
            host = "0.0.0.0"
            port = 443
            certfile = "/path/to/cert.pem"
            keyfile = "/path/to/privkey.pem"
            ```

        Note:
            Omitted values will be set to their defaults.
        """
        with open(filepath, 'rb') as f:
            return load(cls, f)
