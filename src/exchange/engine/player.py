"""A player: one endpoint of the exchange."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from exchange.comms.channel import release
from exchange.comms.message import Message
from exchange.errors import InvalidArgument

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.channel import ExchangeChannel

logger = logging.getLogger(__name__)


class Player:
    """Sends and receives messages over a single channel.

    Parameters
    ----------
    player_id:
        Identifier stamped as ``sender_id`` on every outgoing message.
    channel:
        The transport this player talks through.  The player owns it and
        closes it on :meth:`disconnect`.

    Each call to :meth:`send_message` bumps a private counter exactly
    once and uses the new value as the message's sequence number.  The
    counter is never reset.
    """

    def __init__(self, player_id: str, channel: ExchangeChannel) -> None:
        if player_id is None:
            raise InvalidArgument("player_id cannot be None")
        if channel is None:
            raise InvalidArgument("channel cannot be None")
        self.player_id = player_id
        self.channel = channel
        self._counter = 0
        self._counter_lock = threading.Lock()

    @property
    def message_counter(self) -> int:
        """Number of messages this player has sent."""
        with self._counter_lock:
            return self._counter

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, cancel: CancelToken | None = None) -> None:
        self.channel.connect(cancel)
        logger.debug("Player %s connected", self.player_id)

    def is_connected(self) -> bool:
        return self.channel.is_connected()

    def disconnect(self) -> None:
        """Close the channel.  Never raises."""
        release(self.channel.close, f"channel of player {self.player_id}")
        logger.debug("Player %s disconnected", self.player_id)

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def send_message(self, content: str, recipient_id: str) -> Message:
        """Send *content* to *recipient_id* and return the sent message."""
        with self._counter_lock:
            self._counter += 1
            sequence_number = self._counter

        message = Message(content, self.player_id, recipient_id, sequence_number)
        self.channel.send_message(message)

        logger.info(
            "Player %s sent message #%d: '%s' to %s",
            self.player_id,
            sequence_number,
            content,
            recipient_id,
        )
        return message

    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        """Block until the next message arrives on the channel."""
        message = self.channel.receive_message(cancel)
        logger.info(
            "Player %s received message from %s: '%s'",
            self.player_id,
            message.sender_id,
            message.content,
        )
        return message

    def create_response(self, received: Message) -> str:
        """Build the reply text for *received*.

        The reply is the received content followed by the sequence number
        the *next* send will carry.  The counter itself is not touched.
        """
        response = f"{received.content} {self.message_counter + 1}"
        logger.debug("Player %s created response: '%s'", self.player_id, response)
        return response

    def send_response(self, received: Message) -> Message:
        """Reply to the sender of *received*."""
        return self.send_message(self.create_response(received), received.sender_id)

    def __repr__(self) -> str:
        return (
            f"Player(id={self.player_id!r}, messages_sent={self.message_counter}, "
            f"connected={self.is_connected()})"
        )
