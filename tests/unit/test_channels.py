"""Tests for exchange.comms -- in-process and cross-connected channels."""

from __future__ import annotations

import threading

import pytest

from exchange.comms.cancel import CancelToken
from exchange.comms.channel import ChannelState, ExchangeChannel, release
from exchange.comms.cross_connected import CrossConnectedChannel
from exchange.comms.in_process import InProcessChannel
from exchange.comms.message import Message
from exchange.errors import (
    Cancelled,
    ChannelAlreadyConnected,
    ChannelClosed,
    ChannelNotConnected,
    ConnectionFailed,
)


def _msg(content: str, seq: int = 1) -> Message:
    return Message(content, "A", "B", seq)


class _FailingChannel(ExchangeChannel):
    """A channel whose connect always fails."""

    def __init__(self) -> None:
        self.closed = False

    @property
    def name(self) -> str:
        return "failing"

    def connect(self, cancel: CancelToken | None = None) -> None:
        raise ConnectionFailed("refused")

    def send_message(self, message: Message) -> None:
        raise ChannelNotConnected("never connected")

    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        raise ChannelNotConnected("never connected")

    def is_connected(self) -> bool:
        return False

    def close(self) -> None:
        self.closed = True


class _ExplodingCloseChannel(InProcessChannel):
    def close(self) -> None:
        super().close()
        raise RuntimeError("close blew up")


@pytest.fixture
def channel() -> InProcessChannel:
    ch = InProcessChannel("a->b")
    ch.connect()
    return ch


# ======================================================================
# InProcessChannel lifecycle
# ======================================================================


class TestInProcessLifecycle:
    """Connect / close state transitions."""

    def test_starts_unconnected(self) -> None:
        ch = InProcessChannel("x")
        assert ch.is_connected() is False
        assert ch.name == "x"

    def test_connect(self) -> None:
        ch = InProcessChannel("x")
        ch.connect()
        assert ch.is_connected() is True

    def test_double_connect_rejected(self, channel: InProcessChannel) -> None:
        with pytest.raises(ChannelAlreadyConnected):
            channel.connect()

    def test_close_is_idempotent(self, channel: InProcessChannel) -> None:
        channel.close()
        channel.close()
        assert channel.is_connected() is False

    def test_close_never_connected(self) -> None:
        ch = InProcessChannel("x")
        ch.close()
        assert ch.is_connected() is False

    def test_closed_is_terminal(self, channel: InProcessChannel) -> None:
        channel.close()
        with pytest.raises(ChannelClosed):
            channel.connect()

    def test_context_manager_closes(self) -> None:
        with InProcessChannel("x") as ch:
            ch.connect()
        assert ch.is_connected() is False


# ======================================================================
# InProcessChannel transfer
# ======================================================================


class TestInProcessTransfer:
    """Send / receive semantics."""

    def test_send_before_connect(self) -> None:
        ch = InProcessChannel("x")
        with pytest.raises(ChannelNotConnected):
            ch.send_message(_msg("Hello"))

    def test_receive_before_connect(self) -> None:
        ch = InProcessChannel("x")
        with pytest.raises(ChannelNotConnected):
            ch.receive_message()

    def test_send_after_close(self, channel: InProcessChannel) -> None:
        channel.close()
        with pytest.raises(ChannelClosed):
            channel.send_message(_msg("Hello"))

    def test_closed_is_also_not_connected(self, channel: InProcessChannel) -> None:
        channel.close()
        with pytest.raises(ChannelNotConnected):
            channel.receive_message()

    def test_fifo_order(self, channel: InProcessChannel) -> None:
        sent = [_msg(f"m{i}", i) for i in range(1, 6)]
        for m in sent:
            channel.send_message(m)
        assert channel.queue_size == 5
        received = [channel.receive_message() for _ in sent]
        assert received == sent
        assert channel.queue_size == 0

    def test_close_discards_buffered(self, channel: InProcessChannel) -> None:
        channel.send_message(_msg("one"))
        channel.send_message(_msg("two"))
        channel.close()
        assert channel.queue_size == 0

    def test_blocked_receive_gets_later_send(self, channel: InProcessChannel) -> None:
        results: list[Message] = []
        reader = threading.Thread(
            target=lambda: results.append(channel.receive_message())
        )
        reader.start()
        channel.send_message(_msg("late"))
        reader.join(timeout=5)
        assert not reader.is_alive()
        assert results == [_msg("late")]

    def test_close_wakes_blocked_receiver(self, channel: InProcessChannel) -> None:
        errors: list[BaseException] = []
        started = threading.Event()

        def _reader() -> None:
            started.set()
            try:
                channel.receive_message()
            except BaseException as exc:
                errors.append(exc)

        reader = threading.Thread(target=_reader)
        reader.start()
        started.wait(5)
        channel.close()
        reader.join(timeout=5)
        assert not reader.is_alive()
        assert len(errors) == 1
        assert isinstance(errors[0], ChannelClosed)

    def test_cancel_wakes_blocked_receiver(self, channel: InProcessChannel) -> None:
        token = CancelToken()
        errors: list[BaseException] = []

        def _reader() -> None:
            try:
                channel.receive_message(token)
            except BaseException as exc:
                errors.append(exc)

        reader = threading.Thread(target=_reader)
        reader.start()
        token.cancel()
        reader.join(timeout=5)
        assert not reader.is_alive()
        assert len(errors) == 1
        assert isinstance(errors[0], Cancelled)
        # The channel itself survives a cancelled wait.
        assert channel.is_connected() is True

    def test_cancelled_token_with_pending_message(self, channel: InProcessChannel) -> None:
        token = CancelToken()
        token.cancel()
        channel.send_message(_msg("ready"))
        assert channel.receive_message(token) == _msg("ready")

    def test_many_producers(self, channel: InProcessChannel) -> None:
        def _produce(prefix: str) -> None:
            for i in range(50):
                channel.send_message(Message(f"{prefix}{i}", prefix, "B", i))

        producers = [threading.Thread(target=_produce, args=(p,)) for p in "xyz"]
        for t in producers:
            t.start()
        for t in producers:
            t.join(timeout=5)

        received = [channel.receive_message() for _ in range(150)]
        for prefix in "xyz":
            seqs = [m.sequence_number for m in received if m.sender_id == prefix]
            assert seqs == list(range(50))


# ======================================================================
# CrossConnectedChannel
# ======================================================================


class TestCrossConnectedChannel:
    """Composition of two one-way channels."""

    def test_name(self) -> None:
        cc = CrossConnectedChannel(InProcessChannel("a->b"), InProcessChannel("b->a"))
        assert cc.name == "a->b|b->a"

    def test_connect_connects_both(self) -> None:
        out, back = InProcessChannel("a->b"), InProcessChannel("b->a")
        cc = CrossConnectedChannel(out, back)
        cc.connect()
        assert out.is_connected() and back.is_connected()
        assert cc.is_connected() is True

    def test_cross_wired_pair(self) -> None:
        a_to_b, b_to_a = InProcessChannel("a->b"), InProcessChannel("b->a")
        side_a = CrossConnectedChannel(a_to_b, b_to_a)
        side_b = CrossConnectedChannel(b_to_a, a_to_b)
        side_a.connect()

        side_a.send_message(_msg("ping"))
        assert side_b.receive_message() == _msg("ping")
        side_b.send_message(_msg("pong"))
        assert side_a.receive_message() == _msg("pong")

    def test_partial_connect_closes_send_side(self) -> None:
        out = InProcessChannel("a->b")
        back = _FailingChannel()
        cc = CrossConnectedChannel(out, back)
        with pytest.raises(ConnectionFailed):
            cc.connect()
        assert out.is_connected() is False
        assert cc.is_connected() is False

    def test_send_side_failure_leaves_receive_untouched(self) -> None:
        back = InProcessChannel("b->a")
        cc = CrossConnectedChannel(_FailingChannel(), back)
        with pytest.raises(ConnectionFailed):
            cc.connect()
        back.connect()
        assert back.is_connected() is True

    def test_close_both(self) -> None:
        out, back = InProcessChannel("a->b"), InProcessChannel("b->a")
        cc = CrossConnectedChannel(out, back)
        cc.connect()
        cc.close()
        assert not out.is_connected()
        assert not back.is_connected()

    def test_close_failure_isolated(self) -> None:
        out = _ExplodingCloseChannel("a->b")
        back = InProcessChannel("b->a")
        cc = CrossConnectedChannel(out, back)
        cc.connect()
        cc.close()
        assert not back.is_connected()

    def test_exposes_underlying(self) -> None:
        out, back = InProcessChannel("a->b"), InProcessChannel("b->a")
        cc = CrossConnectedChannel(out, back)
        assert cc.send_channel is out
        assert cc.receive_channel is back


# ======================================================================
# Helpers
# ======================================================================


class TestRelease:
    """Best-effort cleanup helper."""

    def test_success(self) -> None:
        assert release(lambda: None, "nothing") is True

    def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        def _boom() -> None:
            raise RuntimeError("boom")

        assert release(_boom, "widget") is False
        assert "widget" in caplog.text

    def test_channel_states(self) -> None:
        assert {s.name for s in ChannelState} == {
            "UNCONNECTED",
            "CONNECTING",
            "CONNECTED",
            "CLOSED",
        }
