"""In-memory, single-direction channel for players sharing a process."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING

from exchange.comms.cancel import watching
from exchange.comms.channel import ChannelState, ExchangeChannel, require_connected
from exchange.errors import ChannelAlreadyConnected, ChannelClosed, Cancelled

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.message import Message

logger = logging.getLogger(__name__)


class InProcessChannel(ExchangeChannel):
    """Unbounded FIFO queue with a blocking receive.

    Any number of producer and consumer threads may use the channel
    concurrently; the condition variable is its only lock.  Sends never
    block.  Closing the channel discards anything still buffered.
    """

    def __init__(self, channel_id: str) -> None:
        self._channel_id = channel_id
        self._queue: deque[Message] = deque()
        self._state = ChannelState.UNCONNECTED
        self._cond = threading.Condition()

    @property
    def name(self) -> str:
        return self._channel_id

    @property
    def queue_size(self) -> int:
        """Number of buffered, undelivered messages."""
        with self._cond:
            return len(self._queue)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, cancel: CancelToken | None = None) -> None:
        with self._cond:
            if self._state is ChannelState.CONNECTED:
                raise ChannelAlreadyConnected(
                    f"Channel {self._channel_id} is already connected"
                )
            if self._state is ChannelState.CLOSED:
                raise ChannelClosed(f"Channel {self._channel_id} is closed")
            self._state = ChannelState.CONNECTED
        logger.info("InProcessChannel %s connected", self._channel_id)

    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    def close(self) -> None:
        with self._cond:
            if self._state is ChannelState.CLOSED:
                return
            discarded = len(self._queue)
            self._queue.clear()
            self._state = ChannelState.CLOSED
            # Wake blocked receivers so they observe the closed state.
            self._cond.notify_all()
        if discarded:
            logger.debug(
                "InProcessChannel %s discarded %d buffered message(s)",
                self._channel_id,
                discarded,
            )
        logger.info("InProcessChannel %s closed", self._channel_id)

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def send_message(self, message: Message) -> None:
        with self._cond:
            require_connected(self._channel_id, self._state)
            self._queue.append(message)
            self._cond.notify()
        logger.debug("Sent via InProcessChannel %s: %s", self._channel_id, message)

    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        with self._cond:
            require_connected(self._channel_id, self._state)

        with watching(cancel, self._wake):
            with self._cond:
                while not self._queue:
                    require_connected(self._channel_id, self._state)
                    if cancel is not None and cancel.cancelled:
                        raise Cancelled(
                            f"receive on {self._channel_id} was cancelled"
                        )
                    self._cond.wait()
                message = self._queue.popleft()

        logger.debug(
            "Received via InProcessChannel %s: %s", self._channel_id, message
        )
        return message

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()
