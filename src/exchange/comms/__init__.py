"""Communication layer: messages, channels and their transports."""

from exchange.comms.cancel import CancelToken
from exchange.comms.channel import ChannelState, ExchangeChannel, release
from exchange.comms.cross_connected import CrossConnectedChannel
from exchange.comms.in_process import InProcessChannel
from exchange.comms.message import Message
from exchange.comms.socket_channel import SocketChannel, SocketRole

__all__ = [
    "CancelToken",
    "ChannelState",
    "CrossConnectedChannel",
    "ExchangeChannel",
    "InProcessChannel",
    "Message",
    "SocketChannel",
    "SocketRole",
    "release",
]
