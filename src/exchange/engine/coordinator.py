"""Round-based coordinator that drives an exchange between two players."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from exchange.comms.channel import release
from exchange.engine.events import (
    ExchangeEndEvent,
    RoundCompletedEvent,
    StateChangeEvent,
)
from exchange.engine.phase import ExchangeState
from exchange.errors import ExchangeError, ExchangeFailed

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.message import Message
    from exchange.engine.player import Player

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Protocol constants.  Not configurable.
MAX_ROUNDS = 10
INITIAL_MESSAGE = "Hello"


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of a completed exchange."""

    rounds: int
    initiator_sent: int
    responder_sent: int
    transcript: tuple[Message, ...] = ()


class ExchangeCoordinator:
    """Runs :data:`MAX_ROUNDS` rounds between an initiator and a responder.

    Parameters
    ----------
    initiator:
        Player that sends the seed message and every follow-up.
    responder:
        Player that answers each message using
        :meth:`Player.create_response`.
    event_listeners:
        Callables invoked with every :class:`ExchangeEvent`.  Listener
        failures are logged and never affect the exchange.

    Only the initiator is connected by :meth:`run`; the responder's
    channel is expected to be live already, which is the case when both
    players are cross-wired over the same pair of in-process channels.
    Both players are always disconnected when :meth:`run` returns or
    raises.
    """

    def __init__(
        self,
        initiator: Player,
        responder: Player,
        event_listeners: list[Callable[[Any], None]] | None = None,
    ) -> None:
        self.initiator = initiator
        self.responder = responder
        self.event_listeners: list[Callable[[Any], None]] = event_listeners or []
        self.state = ExchangeState.NOT_STARTED

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, cancel: CancelToken | None = None) -> ExchangeResult:
        """Execute the full exchange and return its result.

        Raises
        ------
        ExchangeFailed
            A channel operation failed; ``round`` and ``side`` identify
            where.  The original error is chained as ``__cause__``.
        Cancelled
            *cancel* was triggered while a player was blocked.
        """
        if self.state is not ExchangeState.NOT_STARTED:
            raise ExchangeError(
                f"Exchange has already run (state: {self.state.name})"
            )

        logger.info("=== Starting Message Exchange ===")
        logger.info("Initiator: %s", self.initiator.player_id)
        logger.info("Responder: %s", self.responder.player_id)
        logger.info("Message limit: %d", MAX_ROUNDS)

        self._transition(ExchangeState.RUNNING)
        try:
            guarded(0, self.initiator, lambda: self.initiator.connect(cancel))
            transcript = self._run_rounds(cancel)
        except BaseException as exc:
            self._transition(ExchangeState.FAILED)
            logger.error("Message exchange failed: %s", exc)
            self._emit(
                ExchangeEndEvent(
                    round=getattr(exc, "round", 0),
                    succeeded=False,
                    initiator_sent=self.initiator.message_counter,
                    responder_sent=self.responder.message_counter,
                    reason=str(exc),
                )
            )
            raise
        finally:
            self._cleanup()

        result = ExchangeResult(
            rounds=MAX_ROUNDS,
            initiator_sent=self.initiator.message_counter,
            responder_sent=self.responder.message_counter,
            transcript=tuple(transcript),
        )
        self._transition(ExchangeState.COMPLETED)
        self._report(result)
        self._emit(
            ExchangeEndEvent(
                round=MAX_ROUNDS,
                succeeded=True,
                initiator_sent=result.initiator_sent,
                responder_sent=result.responder_sent,
                reason="All rounds completed.",
            )
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_rounds(self, cancel: CancelToken | None) -> list[Message]:
        initiator = self.initiator
        responder = self.responder
        transcript: list[Message] = []
        current = INITIAL_MESSAGE

        for round_number in range(1, MAX_ROUNDS + 1):
            logger.info("--- Round %d ---", round_number)

            sent = guarded(
                round_number,
                initiator,
                lambda: initiator.send_message(current, responder.player_id),
            )
            received = guarded(
                round_number, responder, lambda: responder.receive_message(cancel)
            )
            guarded(round_number, responder, lambda: responder.send_response(received))
            response = guarded(
                round_number, initiator, lambda: initiator.receive_message(cancel)
            )

            transcript.extend((sent, response))
            current = response.content

            logger.info("Round %d completed", round_number)
            self._emit(
                RoundCompletedEvent(round=round_number, sent=sent, response=response)
            )

        return transcript

    def _transition(self, new_state: ExchangeState) -> None:
        old_state = self.state
        self.state = new_state
        self._emit(StateChangeEvent(old_state=old_state, new_state=new_state))

    def _emit(self, event: Any) -> None:
        """Dispatch *event* to all registered listeners."""
        for listener in self.event_listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener raised an exception")

    def _report(self, result: ExchangeResult) -> None:
        logger.info("=== Message Exchange Completed Successfully ===")
        logger.info(
            "Initiator (%s) sent: %d messages",
            self.initiator.player_id,
            result.initiator_sent,
        )
        logger.info(
            "Responder (%s) sent: %d messages",
            self.responder.player_id,
            result.responder_sent,
        )
        logger.info("Total rounds completed: %d", result.rounds)

    def _cleanup(self) -> None:
        """Disconnect both players, whatever happened before."""
        release(self.initiator.disconnect, f"initiator {self.initiator.player_id}")
        release(self.responder.disconnect, f"responder {self.responder.player_id}")


# ------------------------------------------------------------------
# Half-protocol loops for players running in separate processes
# ------------------------------------------------------------------


def run_initiator(
    player: Player, recipient_id: str, cancel: CancelToken | None = None
) -> list[Message]:
    """Drive the initiator side of :data:`MAX_ROUNDS` rounds.

    *player* must already be connected.  Returns the responses received,
    in order.
    """
    responses: list[Message] = []
    current = INITIAL_MESSAGE

    for round_number in range(1, MAX_ROUNDS + 1):
        logger.info("--- Initiator Round %d ---", round_number)
        guarded(round_number, player, lambda: player.send_message(current, recipient_id))
        response = guarded(round_number, player, lambda: player.receive_message(cancel))
        responses.append(response)
        current = response.content

    logger.info(
        "Initiator %s sent %d messages", player.player_id, player.message_counter
    )
    return responses


def run_responder(player: Player, cancel: CancelToken | None = None) -> list[Message]:
    """Drive the responder side of :data:`MAX_ROUNDS` rounds.

    *player* must already be connected.  Returns the messages received,
    in order.
    """
    received_messages: list[Message] = []

    for round_number in range(1, MAX_ROUNDS + 1):
        logger.info("--- Responder Round %d ---", round_number)
        received = guarded(round_number, player, lambda: player.receive_message(cancel))
        received_messages.append(received)
        guarded(round_number, player, lambda: player.send_response(received))

    logger.info(
        "Responder %s sent %d messages", player.player_id, player.message_counter
    )
    return received_messages


def guarded(round_number: int, player: Player, action: Callable[[], T]) -> T:
    """Run one protocol step, attributing any exchange error to *player*."""
    try:
        return action()
    except ExchangeFailed:
        raise
    except ExchangeError as exc:
        stage = "connect" if round_number == 0 else f"round {round_number}"
        raise ExchangeFailed(
            f"Exchange failed during {stage} on {player.player_id}: {exc}",
            round=round_number,
            side=player.player_id,
        ) from exc
