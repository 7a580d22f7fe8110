"""Exchange engine: players and the round-based coordinator."""

from exchange.engine.coordinator import (
    INITIAL_MESSAGE,
    MAX_ROUNDS,
    ExchangeCoordinator,
    ExchangeResult,
    run_initiator,
    run_responder,
)
from exchange.engine.phase import ExchangeState
from exchange.engine.player import Player

__all__ = [
    "INITIAL_MESSAGE",
    "MAX_ROUNDS",
    "ExchangeCoordinator",
    "ExchangeResult",
    "ExchangeState",
    "Player",
    "run_initiator",
    "run_responder",
]
