"""Length-prefixed JSON framing for messages on a byte stream.

Layout of one frame::

    [4-byte big-endian length][UTF-8 JSON object]

The JSON object carries a format version plus the four message fields.
Both ends of a socket channel must use this exact encoding.
"""

from __future__ import annotations

import json
import logging
import struct
from typing import Any

from exchange.comms.message import Message
from exchange.errors import DeserializationFailed, InvalidArgument

logger = logging.getLogger(__name__)

WIRE_VERSION = 1
MAX_FRAME_SIZE = 16 * 1024 * 1024

_HEADER = struct.Struct(">I")


def encode_message(message: Message) -> bytes:
    """Serialize *message* into one complete frame."""
    body = json.dumps(
        {
            "v": WIRE_VERSION,
            "content": message.content,
            "sender_id": message.sender_id,
            "recipient_id": message.recipient_id,
            "sequence_number": message.sequence_number,
        },
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    if len(body) > MAX_FRAME_SIZE:
        raise InvalidArgument(
            f"encoded message is {len(body)} bytes, limit is {MAX_FRAME_SIZE}"
        )
    return _HEADER.pack(len(body)) + body


def decode_body(body: bytes) -> Message:
    """Deserialize one frame body (without its length prefix)."""
    try:
        data: Any = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DeserializationFailed(f"frame is not valid UTF-8 JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise DeserializationFailed(
            f"frame must hold a JSON object, got {type(data).__name__}"
        )

    version = data.get("v")
    if version != WIRE_VERSION:
        raise DeserializationFailed(
            f"frame is wire version {version!r}, expected {WIRE_VERSION}"
        )

    try:
        return Message(
            content=data["content"],
            sender_id=data["sender_id"],
            recipient_id=data["recipient_id"],
            sequence_number=data["sequence_number"],
        )
    except KeyError as exc:
        raise DeserializationFailed(f"frame is missing field {exc}") from exc
    except InvalidArgument as exc:
        raise DeserializationFailed(f"frame has an invalid field: {exc}") from exc


class FrameBuffer:
    """Accumulates stream bytes and yields whole frames.

    Bytes of an incomplete frame stay buffered between calls, so a
    reader may stop waiting at any time without losing stream position.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    def next_message(self) -> Message | None:
        """Pop and decode the next complete frame, or return ``None``."""
        if len(self._buffer) < _HEADER.size:
            return None

        (length,) = _HEADER.unpack_from(self._buffer)
        if length > MAX_FRAME_SIZE:
            raise DeserializationFailed(
                f"frame length {length} exceeds limit of {MAX_FRAME_SIZE}"
            )

        end = _HEADER.size + length
        if len(self._buffer) < end:
            return None

        body = bytes(self._buffer[_HEADER.size:end])
        del self._buffer[:end]
        logger.debug("Decoded frame of %d bytes", length)
        return decode_body(body)

    def clear(self) -> None:
        self._buffer.clear()
