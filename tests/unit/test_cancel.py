"""Tests for exchange.comms.cancel."""

from __future__ import annotations

import threading

import pytest

from exchange.comms.cancel import CancelToken, watching
from exchange.errors import Cancelled, ExchangeError


class TestCancelToken:
    """Triggering, waiting and callback subscription."""

    def test_starts_uncancelled(self) -> None:
        token = CancelToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_sets_flag(self) -> None:
        token = CancelToken()
        token.cancel()
        assert token.cancelled is True

    def test_cancel_is_idempotent(self) -> None:
        token = CancelToken()
        calls: list[int] = []
        with token.subscribe(lambda: calls.append(1)):
            token.cancel()
            token.cancel()
        assert calls == [1]

    def test_raise_if_cancelled(self) -> None:
        token = CancelToken()
        token.cancel()
        with pytest.raises(Cancelled, match="receive"):
            token.raise_if_cancelled("receive")

    def test_cancelled_is_not_an_exchange_error(self) -> None:
        assert not issubclass(Cancelled, ExchangeError)

    def test_wait_times_out(self) -> None:
        assert CancelToken().wait(0.01) is False

    def test_wait_returns_when_cancelled_from_thread(self) -> None:
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            assert token.wait(5.0) is True
        finally:
            timer.cancel()

    def test_subscribe_fires_immediately_when_already_cancelled(self) -> None:
        token = CancelToken()
        token.cancel()
        calls: list[str] = []
        with token.subscribe(lambda: calls.append("woke")):
            pass
        assert calls == ["woke"]

    def test_unsubscribed_after_block(self) -> None:
        token = CancelToken()
        calls: list[str] = []
        with token.subscribe(lambda: calls.append("woke")):
            pass
        token.cancel()
        assert calls == []


class TestWatching:
    """The helper that tolerates a missing token."""

    def test_none_token(self) -> None:
        with watching(None, lambda: None):
            pass

    def test_forwards_to_token(self) -> None:
        token = CancelToken()
        calls: list[str] = []
        with watching(token, lambda: calls.append("woke")):
            token.cancel()
        assert calls == ["woke"]
