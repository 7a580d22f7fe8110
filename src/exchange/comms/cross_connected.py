"""Bidirectional channel built from two independent one-way channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from exchange.comms.channel import ExchangeChannel, release

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.message import Message

logger = logging.getLogger(__name__)


class CrossConnectedChannel(ExchangeChannel):
    """Send on one channel, receive on another.

    Two players in the same process are wired by giving each a
    ``CrossConnectedChannel`` over the same pair of one-way channels,
    with the directions swapped::

        a_to_b = InProcessChannel("a->b")
        b_to_a = InProcessChannel("b->a")
        player_a = Player("A", CrossConnectedChannel(a_to_b, b_to_a))
        player_b = Player("B", CrossConnectedChannel(b_to_a, a_to_b))

    The wrapper holds references only; the underlying channels keep
    their own lifecycles, so connecting one wrapper connects both
    directions for both players.
    """

    def __init__(
        self, send_channel: ExchangeChannel, receive_channel: ExchangeChannel
    ) -> None:
        self._send_channel = send_channel
        self._receive_channel = receive_channel

    @property
    def name(self) -> str:
        return f"{self._send_channel.name}|{self._receive_channel.name}"

    @property
    def send_channel(self) -> ExchangeChannel:
        return self._send_channel

    @property
    def receive_channel(self) -> ExchangeChannel:
        return self._receive_channel

    def connect(self, cancel: CancelToken | None = None) -> None:
        self._send_channel.connect(cancel)
        try:
            self._receive_channel.connect(cancel)
        except BaseException:
            # Never leave a half-connected pair. The connect error is what
            # propagates, not any failure while closing.
            logger.warning(
                "Receive side %s failed to connect, closing send side %s",
                self._receive_channel.name,
                self._send_channel.name,
            )
            release(self._send_channel.close, f"send channel {self._send_channel.name}")
            raise

    def send_message(self, message: Message) -> None:
        self._send_channel.send_message(message)

    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        return self._receive_channel.receive_message(cancel)

    def is_connected(self) -> bool:
        return self._send_channel.is_connected() and self._receive_channel.is_connected()

    def close(self) -> None:
        release(self._send_channel.close, f"send channel {self._send_channel.name}")
        release(
            self._receive_channel.close,
            f"receive channel {self._receive_channel.name}",
        )
