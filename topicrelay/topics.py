"""Topic membership owned by the signaling relay."""
from __future__ import annotations

import dataclasses
import datetime
import uuid
from typing import Iterable

from websockets.asyncio.server import ServerConnection
from websockets.protocol import State

from topicrelay.exceptions import TopicStateError


def _utc_current_time() -> datetime.datetime:
    # dataclasses.field's default_factory requires a zero argument callable
    return datetime.datetime.now(tz=datetime.timezone.utc)


@dataclasses.dataclass(eq=False)
class Connection:
    """Websocket connection to one peer.

    Connections compare and hash by identity. The set of joined topics is
    only mutated by the [`TopicManager`][topicrelay.topics.TopicManager].

    Attributes:
        websocket: Websocket connection to the peer.
        uuid: Identifier used in logs.
        created: Time the connection was accepted.
        topics: Names of the topics this connection is subscribed to.
    """

    websocket: ServerConnection
    uuid: uuid.UUID = dataclasses.field(default_factory=uuid.uuid4)
    created: datetime.datetime = dataclasses.field(
        default_factory=_utc_current_time,
    )
    topics: set[str] = dataclasses.field(default_factory=set)

    @property
    def open(self) -> bool:
        """The underlying websocket is open and writable."""
        return self.websocket.state is State.OPEN

    def __repr__(self) -> str:
        created = self.created.strftime('%Y-%m-%d %H:%M:%S %Z')
        address = str(self.websocket.remote_address)
        return (
            f'{self.__class__.__name__}(uuid={self.uuid}, '
            f'address={address}, topics={len(self.topics)}, '
            f'created={created})'
        )


class TopicManager:
    """Tracks which connections are subscribed to which topics.

    Membership is stored in both directions: each topic maps to its member
    connections and each connection records the names of the topics it
    joined. Every mutation updates both sides before returning and erases a
    topic in the same step that removes its last member, so a topic exists
    if and only if at least one connection is subscribed to it.

    The manager is not thread-safe. It is intended to be owned by a single
    [`SignalingRelay`][topicrelay.relay.SignalingRelay] running on one
    event loop, where every method call is atomic with respect to other
    connections.
    """

    def __init__(self) -> None:
        self._topics: dict[str, set[Connection]] = {}
        self._connections: dict[uuid.UUID, Connection] = {}

    def add_connection(self, connection: Connection) -> None:
        """Register a newly accepted connection."""
        self._connections[connection.uuid] = connection

    def remove_connection(self, connection: Connection) -> bool:
        """Remove a connection and all of its topic memberships.

        Safe to call more than once; later calls are no-ops.

        Returns:
            `True` if this call removed the connection, `False` if the \
            connection was not registered.
        """
        registered = (
            self._connections.pop(connection.uuid, None) is not None
        )
        self.unsubscribe(connection, list(connection.topics))
        return registered

    def get_connection(self, uuid: uuid.UUID) -> Connection | None:
        """Get a connection by its UUID."""
        return self._connections.get(uuid, None)

    def get_connections(self) -> list[Connection]:
        """Get a list of all connections."""
        return list(self._connections.values())

    def get_topics(self) -> list[str]:
        """Get the names of all topics with at least one member."""
        return list(self._topics)

    def has_topic(self, topic: str) -> bool:
        """Check if a topic currently has members."""
        return topic in self._topics

    def get_members(self, topic: str) -> frozenset[Connection]:
        """Get a snapshot of the members of a topic.

        The snapshot is unaffected by later membership changes so it is
        safe to iterate while other operations mutate the topic.

        Returns:
            Member connections or an empty set if the topic does not exist.
        """
        return frozenset(self._topics.get(topic, ()))

    def subscribe(self, connection: Connection, topics: Iterable[str]) -> None:
        """Add a connection to topics, creating topics that do not exist.

        Subscribing to an already joined topic is a no-op.
        """
        for topic in topics:
            self._topics.setdefault(topic, set()).add(connection)
            connection.topics.add(topic)

    def unsubscribe(
        self,
        connection: Connection,
        topics: Iterable[str],
    ) -> None:
        """Remove a connection from topics and erase emptied topics.

        Topics the connection is not a member of are ignored.
        """
        for topic in topics:
            members = self._topics.get(topic)
            if members is not None:
                members.discard(connection)
                self._erase_if_empty(topic)
            connection.topics.discard(topic)

    def _erase_if_empty(self, topic: str) -> None:
        if not self._topics[topic]:
            del self._topics[topic]

    def check_invariants(self) -> None:
        """Verify the two views of topic membership agree.

        Raises:
            TopicStateError: If a topic without members is addressable, or
                a connection's recorded topics differ from the topics that
                list it as a member.
        """
        for topic, members in self._topics.items():
            if not members:
                raise TopicStateError(f'Topic {topic!r} has no members.')
            for connection in members:
                if topic not in connection.topics:
                    raise TopicStateError(
                        f'{connection!r} is a member of topic {topic!r} '
                        'but does not record the subscription.',
                    )

        for connection in self._connections.values():
            for topic in connection.topics:
                if connection not in self._topics.get(topic, ()):
                    raise TopicStateError(
                        f'{connection!r} records topic {topic!r} but is '
                        'not one of its members.',
                    )
