"""Signaling relay implementation for rendezvous between peers.

The signaling relay is a lightweight server reachable by all peers that lets
them meet on named topics and exchange the small messages needed to set up
a direct peer-to-peer session. The relay never interprets the payloads it
forwards.
"""
from __future__ import annotations

import logging

import websockets.exceptions
from websockets.asyncio.server import broadcast
from websockets.asyncio.server import ServerConnection

from topicrelay.exceptions import EnvelopeDecodeError
from topicrelay.exceptions import EnvelopeEncodeError
from topicrelay.messages import decode_envelope
from topicrelay.messages import encode_envelope
from topicrelay.messages import Envelope
from topicrelay.messages import Ping
from topicrelay.messages import Pong
from topicrelay.messages import Publish
from topicrelay.messages import Subscribe
from topicrelay.messages import Unsubscribe
from topicrelay.topics import Connection
from topicrelay.topics import TopicManager

logger = logging.getLogger(__name__)


class SignalingRelay:
    """Topic-based signaling relay.

    Peers subscribe their websocket connection to any number of topics and
    publish envelopes to a topic. A published envelope is forwarded,
    unmodified, to every other member of the topic. There is no
    acknowledgement, retry, or persistence: members whose connection is not
    open at the time of the publish are skipped.

    Frames that cannot be decoded are ignored and never close the
    connection since peers are untrusted and may send anything.

    The relay is built on websockets and designed to be served using
    [`serve()`][topicrelay.run.serve] with
    [`handler()`][topicrelay.relay.SignalingRelay.handler] as the
    connection handler.

    Args:
        topic_manager: Topic membership state. A new, empty manager is
            created if not provided.
    """

    def __init__(self, topic_manager: TopicManager | None = None) -> None:
        self._topic_manager = (
            TopicManager() if topic_manager is None else topic_manager
        )

    @property
    def topic_manager(self) -> TopicManager:
        """Manager of topic membership."""
        return self._topic_manager

    async def send(self, connection: Connection, envelope: Envelope) -> None:
        """Send an envelope to a single connection.

        Encoding errors and closed connections are logged and the envelope
        is dropped.

        Args:
            connection: Connection to send the envelope to.
            envelope: Envelope to encode and send.
        """
        try:
            frame = encode_envelope(envelope)
        except EnvelopeEncodeError as e:
            logger.error(f'Failed to encode envelope: {e}')
            return

        try:
            await connection.websocket.send(frame)
        except websockets.exceptions.ConnectionClosed:
            logger.debug(
                f'Connection {connection.uuid} closed while attempting to '
                'send envelope',
            )

    def subscribe(self, connection: Connection, envelope: Subscribe) -> None:
        """Add the connection to each topic in the envelope."""
        self.topic_manager.subscribe(connection, envelope.topics)
        logger.debug(
            f'Connection {connection.uuid} subscribed to '
            f'{len(envelope.topics)} topic(s)',
        )

    def unsubscribe(
        self,
        connection: Connection,
        envelope: Unsubscribe,
    ) -> None:
        """Remove the connection from each topic in the envelope."""
        self.topic_manager.unsubscribe(connection, envelope.topics)
        logger.debug(
            f'Connection {connection.uuid} unsubscribed from '
            f'{len(envelope.topics)} topic(s)',
        )

    def publish(self, connection: Connection, envelope: Publish) -> int:
        """Forward the envelope to the other open members of its topic.

        Fan-out iterates a snapshot of the topic membership and writes the
        raw frame to each receiver without waiting for it to be flushed, so
        a slow receiver cannot stall the publisher or the other receivers.
        Publishing to a topic with no other members is a silent no-op.

        Args:
            connection: Publishing connection. Never receives its own
                envelope, even when it is a member of the topic.
            envelope: Envelope to forward.

        Returns:
            Number of connections the envelope was written to.
        """
        receivers = [
            member.websocket
            for member in self.topic_manager.get_members(envelope.topic)
            if member is not connection and member.open
        ]
        if len(receivers) > 0:
            broadcast(receivers, encode_envelope(envelope))
        logger.debug(
            f'Connection {connection.uuid} published to {len(receivers)} '
            'receiver(s)',
        )
        return len(receivers)

    async def ping(self, connection: Connection, envelope: Ping) -> None:
        """Reply to the connection with a pong envelope."""
        await self.send(connection, Pong())

    def close(self, connection: Connection, expected: bool = True) -> None:
        """Remove the connection and all of its topic memberships.

        Safe to call multiple times. Only the first call has an effect.

        Args:
            connection: Connection to clean up.
            expected: If the connection was closed cleanly or due to an
                error.
        """
        topics = len(connection.topics)
        if self.topic_manager.remove_connection(connection):
            reason = 'ok' if expected else 'unexpected'
            logger.info(
                f'Closed connection {connection.uuid} for {reason} reason '
                f'(code: {connection.websocket.close_code}, '
                f'topics: {topics})',
            )

    async def _process_envelope(
        self,
        connection: Connection,
        envelope: Envelope,
    ) -> None:
        # Dispatches the envelope to the correct method depending on the type
        if isinstance(envelope, Subscribe):
            self.subscribe(connection, envelope)
        elif isinstance(envelope, Unsubscribe):
            self.unsubscribe(connection, envelope)
        elif isinstance(envelope, Publish):
            self.publish(connection, envelope)
        elif isinstance(envelope, Ping):
            await self.ping(connection, envelope)
        else:
            raise AssertionError('Unreachable.')

    async def process_frame(
        self,
        connection: Connection,
        frame: str | bytes,
    ) -> None:
        """Decode and apply one frame received on a connection.

        Frames that cannot be decoded are logged and discarded.

        Args:
            connection: Connection the frame was received on.
            frame: Text or binary websocket frame.
        """
        try:
            envelope = decode_envelope(frame)
        except EnvelopeDecodeError as e:
            logger.debug(
                f'Ignoring frame from connection {connection.uuid}: {e}',
            )
            return

        await self._process_envelope(connection, envelope)

    async def handler(self, websocket: ServerConnection) -> None:
        """Websocket server connection handler.

        Registers the connection, then applies each received frame in
        order. Whatever ends the connection, a clean close, a protocol error,
        or cancellation at server shutdown, the connection's memberships are
        removed exactly once.

        Args:
            websocket: Websocket connection accepted by the server.
        """
        connection = Connection(websocket)
        self.topic_manager.add_connection(connection)
        logger.info(
            f'Accepted connection {connection.uuid} from '
            f'{websocket.remote_address}',
        )

        expected = False
        try:
            async for frame in websocket:
                await self.process_frame(connection, frame)
            expected = True
        except websockets.exceptions.ConnectionClosedError:
            pass
        finally:
            self.close(connection, expected=expected)
