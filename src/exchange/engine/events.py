"""Exchange events for observers of a coordinated run."""

from __future__ import annotations

from dataclasses import dataclass

from exchange.comms.message import Message
from exchange.engine.phase import ExchangeState


@dataclass(frozen=True)
class ExchangeEvent:
    """Base exchange event."""

    round: int = 0


@dataclass(frozen=True)
class StateChangeEvent(ExchangeEvent):
    """The coordinator moved to a new state."""

    old_state: ExchangeState = ExchangeState.NOT_STARTED
    new_state: ExchangeState = ExchangeState.NOT_STARTED


@dataclass(frozen=True)
class RoundCompletedEvent(ExchangeEvent):
    """One full send/receive/respond/receive cycle finished."""

    sent: Message | None = None
    response: Message | None = None


@dataclass(frozen=True)
class ExchangeEndEvent(ExchangeEvent):
    """The exchange reached a terminal state."""

    succeeded: bool = False
    initiator_sent: int = 0
    responder_sent: int = 0
    reason: str = ""
