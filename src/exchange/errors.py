"""Exception hierarchy for the exchange core.

Every channel-contract violation and transport failure derives from
:class:`ExchangeError`.  :class:`Cancelled` does not, so a
caller can tell an interrupted wait apart from a broken channel.
"""

from __future__ import annotations


class ExchangeError(Exception):
    """Base class for all exchange failures."""


class InvalidArgument(ExchangeError, ValueError):
    """A required value was missing or of the wrong type."""


class ChannelAlreadyConnected(ExchangeError):
    """``connect()`` was called on a channel that is already connected."""


class ChannelNotConnected(ExchangeError):
    """The channel is not in the connected state."""


class ChannelClosed(ChannelNotConnected):
    """The channel has been closed and cannot be used again."""


class ConnectionFailed(ExchangeError):
    """The transport could not bind, accept or dial."""


class SendFailed(ExchangeError):
    """The transport rejected or errored during a write."""


class ReceiveFailed(ExchangeError):
    """The transport errored during a read, or the peer went away."""


class DeserializationFailed(ExchangeError):
    """A received payload was malformed or truncated."""


class ExchangeFailed(ExchangeError):
    """A coordinated exchange failed.

    ``round`` is the round in progress (``0`` for the connect stage) and
    ``side`` is the id of the player whose operation failed.
    """

    def __init__(self, message: str, round: int, side: str) -> None:
        super().__init__(message)
        self.round = round
        self.side = side


class Cancelled(Exception):
    """A blocking wait was interrupted through a cancel token."""
