"""Exception types raised by the signaling relay."""
from __future__ import annotations


class RelayError(Exception):
    """Base exception type for exceptions raised by the relay."""

    pass


class EnvelopeError(RelayError):
    """Base exception type for envelope encoding and decoding."""

    pass


class EnvelopeDecodeError(EnvelopeError):
    """Exception raised when a frame cannot be decoded into an envelope."""

    pass


class EnvelopeEncodeError(EnvelopeError):
    """Exception raised when an envelope cannot be encoded."""

    pass


class TopicStateError(RelayError):
    """Topic membership state violates a consistency invariant."""

    pass
