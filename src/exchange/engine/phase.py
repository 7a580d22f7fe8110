"""State enum for the exchange state machine."""

from enum import Enum, auto


class ExchangeState(Enum):
    """Coordinator states in order of progression.

    ``COMPLETED`` and ``FAILED`` are terminal.
    """

    NOT_STARTED = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
