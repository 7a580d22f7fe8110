"""Session runner: builds channels and players for each execution mode."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from exchange.comms.cross_connected import CrossConnectedChannel
from exchange.comms.in_process import InProcessChannel
from exchange.comms.message import Message
from exchange.comms.socket_channel import SocketChannel
from exchange.engine.coordinator import (
    MAX_ROUNDS,
    ExchangeCoordinator,
    guarded,
    run_initiator,
    run_responder,
)
from exchange.engine.player import Player
from exchange.errors import InvalidArgument

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.config.schema import ExchangeConfig

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    """Result of a single session in any mode."""

    mode: str
    role: str | None
    rounds: int
    messages_sent: dict[str, int] = field(default_factory=dict)
    transcript: list[Message] = field(default_factory=list)
    duration: float = 0.0


def run_session(
    config: ExchangeConfig,
    cancel: CancelToken | None = None,
    event_listeners: list[Any] | None = None,
) -> SessionResult:
    """Run whichever session *config* describes."""
    if config.mode == "same-process":
        return run_same_process(config, cancel, event_listeners)
    if config.role == "server":
        return run_server(config, cancel)
    if config.role == "client":
        return run_client(config, cancel)
    raise InvalidArgument("separate-process mode requires role 'server' or 'client'")


def run_same_process(
    config: ExchangeConfig,
    cancel: CancelToken | None = None,
    event_listeners: list[Any] | None = None,
) -> SessionResult:
    """Run both players in this process over cross-wired in-memory queues."""
    initiator_id = config.players.initiator_id
    responder_id = config.players.responder_id
    start_time = time.monotonic()

    logger.info("=== Same Process Message Exchange Mode ===")

    to_responder = InProcessChannel(f"{initiator_id}->{responder_id}")
    to_initiator = InProcessChannel(f"{responder_id}->{initiator_id}")

    initiator = Player(initiator_id, CrossConnectedChannel(to_responder, to_initiator))
    responder = Player(responder_id, CrossConnectedChannel(to_initiator, to_responder))

    coordinator = ExchangeCoordinator(initiator, responder, event_listeners)
    result = coordinator.run(cancel)

    return SessionResult(
        mode=config.mode,
        role=None,
        rounds=result.rounds,
        messages_sent={
            initiator_id: result.initiator_sent,
            responder_id: result.responder_sent,
        },
        transcript=list(result.transcript),
        duration=time.monotonic() - start_time,
    )


def run_server(
    config: ExchangeConfig, cancel: CancelToken | None = None
) -> SessionResult:
    """Listen for one peer and act as the responder."""
    sock = config.socket
    start_time = time.monotonic()

    logger.info("=== Separate Process Message Exchange Mode - Server (Responder) ===")
    logger.info("Starting server on port %d", sock.port)

    channel = SocketChannel.listener(sock.port, host="")
    responder = Player(config.players.responder_id, channel)

    try:
        guarded(0, responder, lambda: responder.connect(cancel))
        received = run_responder(responder, cancel)
    finally:
        responder.disconnect()

    logger.info("=== Server Message Exchange Completed ===")
    return SessionResult(
        mode=config.mode,
        role="server",
        rounds=MAX_ROUNDS,
        messages_sent={responder.player_id: responder.message_counter},
        transcript=received,
        duration=time.monotonic() - start_time,
    )


def run_client(
    config: ExchangeConfig, cancel: CancelToken | None = None
) -> SessionResult:
    """Dial the server and act as the initiator."""
    sock = config.socket
    start_time = time.monotonic()

    logger.info("=== Separate Process Message Exchange Mode - Client (Initiator) ===")
    logger.info("Connecting to server at %s:%d", sock.host, sock.port)

    channel = SocketChannel.connector(
        sock.host,
        sock.port,
        connect_attempts=sock.connect_attempts,
        retry_delay=sock.retry_delay,
        connect_timeout=sock.connect_timeout,
    )
    initiator = Player(config.players.initiator_id, channel)

    try:
        guarded(0, initiator, lambda: initiator.connect(cancel))
        responses = run_initiator(initiator, config.players.responder_id, cancel)
    finally:
        initiator.disconnect()

    logger.info("=== Client Message Exchange Completed ===")
    return SessionResult(
        mode=config.mode,
        role="client",
        rounds=MAX_ROUNDS,
        messages_sent={initiator.player_id: initiator.message_counter},
        transcript=responses,
        duration=time.monotonic() - start_time,
    )
