from __future__ import annotations

import random
from unittest import mock

import pytest
from websockets.protocol import State

from topicrelay.exceptions import TopicStateError
from topicrelay.topics import Connection
from topicrelay.topics import TopicManager


def mock_connection(state: State = State.OPEN) -> Connection:
    websocket = mock.MagicMock()
    websocket.state = state
    websocket.remote_address = ('127.0.0.1', 1234)
    return Connection(websocket)


def test_connection_equality_is_identity() -> None:
    connection = mock_connection()
    other = Connection(connection.websocket, uuid=connection.uuid)

    assert connection == connection
    assert connection != other
    assert len({connection, other}) == 2


def test_connection_open() -> None:
    assert mock_connection(State.OPEN).open
    assert not mock_connection(State.CLOSING).open
    assert not mock_connection(State.CLOSED).open


def test_connection_repr() -> None:
    connection = mock_connection()
    assert str(connection.uuid) in repr(connection)


def test_topic_manager_empty() -> None:
    manager = TopicManager()

    assert manager.get_connections() == []
    assert manager.get_topics() == []
    assert not manager.has_topic('topic')
    assert manager.get_members('topic') == frozenset()
    manager.check_invariants()


def test_add_and_get_connection() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)

    assert manager.get_connections() == [connection]
    assert manager.get_connection(connection.uuid) is connection


def test_subscribe_creates_topic() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)

    manager.subscribe(connection, ['a', 'b'])

    assert set(manager.get_topics()) == {'a', 'b'}
    assert manager.get_members('a') == {connection}
    assert connection.topics == {'a', 'b'}
    manager.check_invariants()


def test_subscribe_is_idempotent() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)

    manager.subscribe(connection, ['a'])
    manager.subscribe(connection, ['a', 'a'])

    assert manager.get_members('a') == {connection}
    assert connection.topics == {'a'}


def test_unsubscribe_erases_empty_topic() -> None:
    manager = TopicManager()
    first, second = mock_connection(), mock_connection()
    manager.add_connection(first)
    manager.add_connection(second)
    manager.subscribe(first, ['a'])
    manager.subscribe(second, ['a'])

    manager.unsubscribe(first, ['a'])
    assert manager.get_members('a') == {second}
    assert first.topics == set()

    manager.unsubscribe(second, ['a'])
    assert not manager.has_topic('a')
    assert manager.get_topics() == []
    manager.check_invariants()


def test_unsubscribe_unknown_topic_is_noop() -> None:
    manager = TopicManager()
    first, second = mock_connection(), mock_connection()
    manager.subscribe(first, ['a'])

    manager.unsubscribe(first, ['missing'])
    manager.unsubscribe(second, ['a'])

    assert manager.get_members('a') == {first}
    manager.check_invariants()


def test_resubscribe_after_erase_starts_fresh_topic() -> None:
    manager = TopicManager()
    first, second = mock_connection(), mock_connection()
    manager.subscribe(first, ['a'])
    manager.unsubscribe(first, ['a'])

    manager.subscribe(second, ['a'])

    assert manager.get_members('a') == {second}


def test_get_members_is_snapshot() -> None:
    manager = TopicManager()
    first, second = mock_connection(), mock_connection()
    manager.subscribe(first, ['a'])

    members = manager.get_members('a')
    manager.subscribe(second, ['a'])
    manager.unsubscribe(first, ['a'])

    assert members == {first}


def test_remove_connection_cleans_up_all_topics() -> None:
    manager = TopicManager()
    first, second = mock_connection(), mock_connection()
    manager.add_connection(first)
    manager.add_connection(second)
    manager.subscribe(first, ['a', 'b', 'c'])
    manager.subscribe(second, ['b'])

    assert manager.remove_connection(first)

    assert manager.get_connections() == [second]
    assert manager.get_topics() == ['b']
    assert manager.get_members('b') == {second}
    assert first.topics == set()
    manager.check_invariants()


def test_remove_connection_is_idempotent() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)
    manager.subscribe(connection, ['a'])

    assert manager.remove_connection(connection)
    assert not manager.remove_connection(connection)

    assert manager.get_topics() == []
    assert manager.get_connections() == []


def test_remove_connection_without_subscriptions() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)

    assert manager.remove_connection(connection)
    assert manager.get_connections() == []
    manager.check_invariants()


def test_check_invariants_empty_topic() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.subscribe(connection, ['a'])
    # Bypass the manager to corrupt the state
    manager._topics['a'].clear()

    with pytest.raises(TopicStateError, match='has no members'):
        manager.check_invariants()


def test_check_invariants_missing_connection_record() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.subscribe(connection, ['a'])
    connection.topics.clear()

    with pytest.raises(TopicStateError, match='does not record'):
        manager.check_invariants()


def test_check_invariants_missing_membership() -> None:
    manager = TopicManager()
    connection = mock_connection()
    manager.add_connection(connection)
    connection.topics.add('a')

    with pytest.raises(TopicStateError, match='is not one of its members'):
        manager.check_invariants()


@pytest.mark.parametrize('seed', range(5))
def test_membership_stays_consistent(seed: int) -> None:
    rng = random.Random(seed)
    manager = TopicManager()
    connections = [mock_connection() for _ in range(5)]
    for connection in connections:
        manager.add_connection(connection)
    topics = [f'topic-{i}' for i in range(4)]

    for _ in range(200):
        connection = rng.choice(connections)
        names = rng.sample(topics, rng.randint(1, len(topics)))
        if rng.random() < 0.5:
            manager.subscribe(connection, names)
        else:
            manager.unsubscribe(connection, names)

        manager.check_invariants()
        for topic in topics:
            expected = {c for c in connections if topic in c.topics}
            assert manager.get_members(topic) == expected
            assert manager.has_topic(topic) == (len(expected) > 0)

    for connection in connections:
        manager.remove_connection(connection)
    assert manager.get_topics() == []
    manager.check_invariants()
