"""Envelope types exchanged between peers and the signaling relay.

Every frame on a signaling connection is a JSON object with a `type`
discriminant. The relay only models the fields it routes on; a
[`Publish`][topicrelay.messages.Publish] envelope also keeps the raw frame
text so it can be forwarded to other peers exactly as it was received,
including any fields the relay knows nothing about.
"""
from __future__ import annotations

import dataclasses
import enum
import json
from typing import Any
from typing import Union

from topicrelay.exceptions import EnvelopeDecodeError
from topicrelay.exceptions import EnvelopeEncodeError


class EnvelopeType(enum.Enum):
    """Types of envelopes supported."""

    subscribe = 'subscribe'
    """Join one or more topics."""
    unsubscribe = 'unsubscribe'
    """Leave one or more topics."""
    publish = 'publish'
    """Forward the envelope to the other members of a topic."""
    ping = 'ping'
    """Liveness probe from a peer."""
    pong = 'pong'
    """Reply to a ping."""


@dataclasses.dataclass(frozen=True)
class Subscribe:
    """Request to join topics.

    Attributes:
        topics: Names of the topics to join.
    """

    topics: list[str]
    type: str = EnvelopeType.subscribe.value


@dataclasses.dataclass(frozen=True)
class Unsubscribe:
    """Request to leave topics.

    Attributes:
        topics: Names of the topics to leave.
    """

    topics: list[str]
    type: str = EnvelopeType.unsubscribe.value


@dataclasses.dataclass(frozen=True)
class Publish:
    """Message to forward to the other members of a topic.

    Attributes:
        topic: Name of the destination topic.
        raw: Frame text exactly as received from the publisher.
        fields: All decoded fields of the frame, including `type` and
            `topic`. Excluded from the `repr()` because they carry
            arbitrary peer payloads.
    """

    topic: str
    raw: str = dataclasses.field(repr=False)
    fields: dict[str, Any] = dataclasses.field(
        default_factory=dict,
        repr=False,
        compare=False,
    )
    type: str = EnvelopeType.publish.value


@dataclasses.dataclass(frozen=True)
class Ping:
    """Liveness probe sent by a peer."""

    type: str = EnvelopeType.ping.value


@dataclasses.dataclass(frozen=True)
class Pong:
    """Reply sent by the relay to a ping."""

    type: str = EnvelopeType.pong.value


Envelope = Union[Subscribe, Unsubscribe, Publish, Ping, Pong]
"""Union of all envelope types."""


def _decode_topics(data: dict[str, Any]) -> list[str]:
    topics = data.get('topics')
    if not isinstance(topics, list):
        raise EnvelopeDecodeError(
            f'Envelope of type {data["type"]} requires a list of topics.',
        )
    # Topic names are opaque but must be non-empty strings.
    return [topic for topic in topics if isinstance(topic, str) and topic]


def decode_envelope(frame: str | bytes) -> Envelope:
    """Decode a websocket frame into the correct envelope type.

    Args:
        frame: Text or binary frame received from a peer.

    Returns:
        Parsed envelope.

    Raises:
        EnvelopeDecodeError: If the frame is not valid UTF-8 JSON, is not a
            JSON object, has a missing or unknown `type`, or is missing the
            fields required by its type.
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode('utf-8')
        except UnicodeDecodeError as e:
            raise EnvelopeDecodeError('Frame is not valid UTF-8.') from e

    try:
        data = json.loads(frame)
    except (json.JSONDecodeError, RecursionError) as e:
        # Valid JSON nested deeper than the interpreter's recursion limit
        # is rejected like any other unparsable frame.
        raise EnvelopeDecodeError('Failed to load frame as JSON.') from e

    if not isinstance(data, dict):
        raise EnvelopeDecodeError(
            f'Expected a JSON object but got {type(data).__name__}.',
        )

    try:
        envelope_type = EnvelopeType(data.get('type'))
    except (TypeError, ValueError) as e:
        raise EnvelopeDecodeError(
            f'The envelope is of an unknown type: {data.get("type")!r}.',
        ) from e

    if envelope_type is EnvelopeType.subscribe:
        return Subscribe(topics=_decode_topics(data))
    elif envelope_type is EnvelopeType.unsubscribe:
        return Unsubscribe(topics=_decode_topics(data))
    elif envelope_type is EnvelopeType.publish:
        topic = data.get('topic')
        if not isinstance(topic, str) or not topic:
            raise EnvelopeDecodeError(
                'Publish envelope requires a non-empty topic string.',
            )
        return Publish(topic=topic, raw=frame, fields=data)
    elif envelope_type is EnvelopeType.ping:
        return Ping()
    else:
        # Pong is only ever sent by the relay.
        raise EnvelopeDecodeError('Peers may not send pong envelopes.')


def encode_envelope(envelope: Envelope) -> str:
    """Encode an envelope as a JSON string.

    A [`Publish`][topicrelay.messages.Publish] envelope is encoded as its
    raw frame text so forwarded frames are byte-identical to the original.

    Args:
        envelope: Envelope to encode.

    Raises:
        EnvelopeEncodeError: If the envelope cannot be JSON encoded.
    """
    if isinstance(envelope, Publish):
        return envelope.raw
    if not isinstance(envelope, (Subscribe, Unsubscribe, Ping, Pong)):
        raise EnvelopeEncodeError(
            f'Expected an envelope but got {type(envelope).__name__}.',
        )

    data = dataclasses.asdict(envelope)
    # Put the discriminant first to match the wire shape peers expect.
    data = {'type': data.pop('type'), **data}
    try:
        return json.dumps(data, separators=(',', ':'))
    except (TypeError, ValueError) as e:
        raise EnvelopeEncodeError('Error encoding envelope.') from e
