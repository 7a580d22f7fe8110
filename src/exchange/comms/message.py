"""Message data structure for the communication layer."""

from __future__ import annotations

from dataclasses import dataclass

from exchange.errors import InvalidArgument


@dataclass(frozen=True)
class Message:
    """An immutable message passed between two players."""

    content: str
    sender_id: str
    recipient_id: str
    sequence_number: int

    def __post_init__(self) -> None:
        for name in ("content", "sender_id", "recipient_id"):
            value = getattr(self, name)
            if value is None:
                raise InvalidArgument(f"{name} cannot be None")
            if not isinstance(value, str):
                raise InvalidArgument(
                    f"{name} must be a str, got {type(value).__name__}"
                )
        # bool is an int subclass but never a valid sequence number.
        if isinstance(self.sequence_number, bool) or not isinstance(
            self.sequence_number, int
        ):
            raise InvalidArgument(
                "sequence_number must be an int, got "
                f"{type(self.sequence_number).__name__}"
            )
