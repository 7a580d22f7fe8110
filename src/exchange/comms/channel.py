"""Exchange channel abstractions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable

from exchange.errors import ChannelClosed, ChannelNotConnected

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.message import Message

logger = logging.getLogger(__name__)


class ChannelState(Enum):
    """Lifecycle of a channel.  ``CLOSED`` is terminal."""

    UNCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    CLOSED = auto()


class ExchangeChannel(ABC):
    """Abstract base for a two-party message transport.

    Every variant follows the same contract: :meth:`connect` is strict
    (a second call fails), :meth:`send_message` and
    :meth:`receive_message` require a connected channel, and
    :meth:`close` is idempotent and never raises.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable channel identifier used in log lines."""
        ...

    @abstractmethod
    def connect(self, cancel: CancelToken | None = None) -> None:
        """Establish whatever is needed for send/receive to work."""
        ...

    @abstractmethod
    def send_message(self, message: Message) -> None:
        """Hand *message* to the transport."""
        ...

    @abstractmethod
    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        """Block until the next message arrives and return it."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Return the current connection state without blocking."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release transport resources.  Safe to call repeatedly."""
        ...

    def __enter__(self) -> ExchangeChannel:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, connected={self.is_connected()})"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def require_connected(name: str, state: ChannelState) -> None:
    """Raise the appropriate error unless *state* is ``CONNECTED``."""
    if state is ChannelState.CONNECTED:
        return
    if state is ChannelState.CLOSED:
        raise ChannelClosed(f"Channel {name} is closed")
    raise ChannelNotConnected(f"Channel {name} is not connected")


def release(action: Callable[[], Any], what: str) -> bool:
    """Run a best-effort cleanup *action*, logging instead of raising.

    Only for use on close/disconnect paths, where there is nothing left
    to do with an error.  Returns ``True`` if the action succeeded.
    """
    try:
        action()
    except Exception as exc:
        logger.warning("Error releasing %s: %s", what, exc)
        logger.debug("Release failure detail for %s", what, exc_info=True)
        return False
    return True
