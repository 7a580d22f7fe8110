"""TCP channel for players running in separate processes or hosts."""

from __future__ import annotations

import logging
import select
import selectors
import socket
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any

from exchange.comms.cancel import watching
from exchange.comms.channel import (
    ChannelState,
    ExchangeChannel,
    release,
    require_connected,
)
from exchange.comms.wire import FrameBuffer, encode_message
from exchange.errors import (
    Cancelled,
    ChannelAlreadyConnected,
    ChannelClosed,
    ConnectionFailed,
    DeserializationFailed,
    InvalidArgument,
    ReceiveFailed,
    SendFailed,
)

if TYPE_CHECKING:
    from exchange.comms.cancel import CancelToken
    from exchange.comms.message import Message

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 1.0

_RECV_CHUNK = 65536
_CLOSE_READER_GRACE = 1.0


class SocketRole(Enum):
    """Which end of the TCP connection this channel plays."""

    LISTENER = "listener"
    CONNECTOR = "connector"


class SocketChannel(ExchangeChannel):
    """Bidirectional channel over a single TCP connection.

    A *listener* binds a port and accepts exactly one peer; a *connector*
    dials ``host:port``, retrying while the connection is refused.  Role
    and target are fixed at construction; use :meth:`listener` or
    :meth:`connector` rather than calling the constructor directly.

    Whole messages are the unit of transfer: every send writes one
    length-prefixed frame under a lock, and every receive returns one
    decoded frame.  Blocking waits (accept, retry back-off, receive)
    select on the socket plus an internal wake-up pair, so a cancel
    token or a concurrent :meth:`close` interrupts them immediately.
    """

    def __init__(
        self,
        role: SocketRole,
        host: str,
        port: int,
        *,
        connect_attempts: int = DEFAULT_CONNECT_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        connect_timeout: float | None = None,
    ) -> None:
        if host is None:
            raise InvalidArgument("host cannot be None")
        if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
            raise InvalidArgument(f"port must be an int in 0..65535, got {port!r}")
        if role is SocketRole.CONNECTOR and port == 0:
            raise InvalidArgument("a connector needs a concrete port")
        if connect_attempts < 1:
            raise InvalidArgument("connect_attempts must be at least 1")

        self._role = role
        self._host = host
        self._port = port
        self._connect_attempts = connect_attempts
        self._retry_delay = retry_delay
        self._connect_timeout = connect_timeout

        self._state = ChannelState.UNCONNECTED
        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._recv_lock = threading.Lock()

        self._sock: socket.socket | None = None
        self._server_sock: socket.socket | None = None
        self._signal_rx: socket.socket | None = None
        self._signal_tx: socket.socket | None = None
        self._frames = FrameBuffer()

        self._bound_port: int | None = None
        self.listening = threading.Event()

    @classmethod
    def listener(cls, port: int, host: str = "", **kwargs: Any) -> SocketChannel:
        """A channel that accepts one peer on *port* (``0`` = ephemeral)."""
        return cls(SocketRole.LISTENER, host, port, **kwargs)

    @classmethod
    def connector(cls, host: str, port: int, **kwargs: Any) -> SocketChannel:
        """A channel that dials *host*:*port*."""
        return cls(SocketRole.CONNECTOR, host, port, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        if self._role is SocketRole.LISTENER:
            return f"listener:{self._bound_port or self._port}"
        return f"connector:{self._host}:{self._port}"

    @property
    def role(self) -> SocketRole:
        return self._role

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def bound_port(self) -> int | None:
        """Port actually bound by a listener, once :attr:`listening` is set."""
        return self._bound_port

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    def connect(self, cancel: CancelToken | None = None) -> None:
        with self._state_lock:
            if self._state in (ChannelState.CONNECTED, ChannelState.CONNECTING):
                raise ChannelAlreadyConnected(f"Channel {self.name} is already connected")
            if self._state is ChannelState.CLOSED:
                raise ChannelClosed(f"Channel {self.name} is closed")
            self._state = ChannelState.CONNECTING
            self._signal_rx, self._signal_tx = socket.socketpair()
            self._signal_rx.setblocking(False)
            self._signal_tx.setblocking(False)

        try:
            with watching(cancel, self._wake):
                if self._role is SocketRole.LISTENER:
                    sock = self._accept_peer(cancel)
                else:
                    sock = self._dial(cancel)
        except BaseException:
            self._abort_connect()
            raise

        with self._state_lock:
            closed_meanwhile = self._state is ChannelState.CLOSED
            if not closed_meanwhile:
                self._sock = sock
                self._state = ChannelState.CONNECTED

        if closed_meanwhile:
            release(sock.close, f"peer socket of {self.name}")
            self._abort_connect()
            raise ChannelClosed(f"Channel {self.name} was closed while connecting")

        logger.info("SocketChannel %s connected", self.name)

    def _accept_peer(self, cancel: CancelToken | None) -> socket.socket:
        try:
            server = socket.create_server((self._host, self._port), backlog=1)
        except OSError as exc:
            raise ConnectionFailed(
                f"Failed to listen on {self._host or '*'}:{self._port}: {exc}"
            ) from exc

        self._server_sock = server
        self._bound_port = server.getsockname()[1]
        self.listening.set()
        logger.info("Listening on port %d", self._bound_port)

        self._wait(server, cancel, "accept")
        try:
            peer, address = server.accept()
        except OSError as exc:
            raise ConnectionFailed(f"Failed to accept on port {self._bound_port}: {exc}") from exc

        peer.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.info("Accepted connection from %s:%d", address[0], address[1])
        return peer

    def _dial(self, cancel: CancelToken | None) -> socket.socket:
        last_error: ConnectionRefusedError | None = None

        for attempt in range(1, self._connect_attempts + 1):
            try:
                sock = socket.create_connection(
                    (self._host, self._port), timeout=self._connect_timeout
                )
            except ConnectionRefusedError as exc:
                last_error = exc
                if attempt == self._connect_attempts:
                    break
                logger.warning(
                    "Connection attempt %d/%d to %s:%d refused, retrying in %.1fs",
                    attempt,
                    self._connect_attempts,
                    self._host,
                    self._port,
                    self._retry_delay,
                )
                self._wait(None, cancel, "connect back-off", timeout=self._retry_delay)
                continue
            except OSError as exc:
                raise ConnectionFailed(
                    f"Failed to connect to {self._host}:{self._port}: {exc}"
                ) from exc

            sock.settimeout(None)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            logger.info("Connected to %s:%d on attempt %d", self._host, self._port, attempt)
            return sock

        logger.error(
            "All %d connection attempts to %s:%d were refused",
            self._connect_attempts,
            self._host,
            self._port,
        )
        raise ConnectionFailed(
            f"Connection to {self._host}:{self._port} refused after "
            f"{self._connect_attempts} attempts"
        ) from last_error

    def _abort_connect(self) -> None:
        """Undo a failed or interrupted connect."""
        self.listening.clear()
        if self._server_sock is not None:
            release(self._server_sock.close, f"listening socket of {self.name}")
            self._server_sock = None
        self._release_signal_pair()
        with self._state_lock:
            if self._state is ChannelState.CONNECTING:
                self._state = ChannelState.UNCONNECTED

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    def send_message(self, message: Message) -> None:
        require_connected(self.name, self._state)
        frame = encode_message(message)

        with self._send_lock:
            sock = self._sock
            if sock is None:
                require_connected(self.name, self._state)
                raise SendFailed(f"Channel {self.name} has no socket")
            try:
                sock.sendall(frame)
            except (OSError, ValueError) as exc:
                require_connected(self.name, self._state)
                raise SendFailed(f"Failed to send message via {self.name}: {exc}") from exc

        logger.debug("Sent %d byte frame via %s: %s", len(frame), self.name, message)

    def receive_message(self, cancel: CancelToken | None = None) -> Message:
        require_connected(self.name, self._state)

        with self._recv_lock, watching(cancel, self._wake):
            while True:
                message = self._frames.next_message()
                if message is not None:
                    logger.debug("Received via %s: %s", self.name, message)
                    return message

                sock = self._sock
                if sock is None:
                    require_connected(self.name, self._state)
                    raise ReceiveFailed(f"Channel {self.name} has no socket")
                try:
                    self._wait(sock, cancel, "receive")
                    chunk = sock.recv(_RECV_CHUNK)
                except (OSError, ValueError) as exc:
                    # A concurrent close() tears the socket down under us.
                    require_connected(self.name, self._state)
                    raise ReceiveFailed(
                        f"Failed to receive message via {self.name}: {exc}"
                    ) from exc

                if not chunk:
                    self._on_peer_closed()
                self._frames.feed(chunk)

    def _on_peer_closed(self) -> None:
        pending = len(self._frames)
        if pending:
            raise DeserializationFailed(
                f"Connection on {self.name} closed mid-frame with {pending} byte(s) pending"
            )
        raise ReceiveFailed(f"Connection on {self.name} was closed by the peer")

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def _wait(
        self,
        sock: socket.socket | None,
        cancel: CancelToken | None,
        operation: str,
        timeout: float | None = None,
    ) -> bool:
        """Block until *sock* is readable or *timeout* elapses.

        Returns ``True`` when *sock* is readable and ``False`` on timeout.
        Raises :class:`Cancelled` or :class:`ChannelClosed` when woken by
        the cancel token or a concurrent :meth:`close`.
        """
        with selectors.DefaultSelector() as selector:
            if sock is not None:
                selector.register(sock, selectors.EVENT_READ)
            selector.register(self._signal_rx, selectors.EVENT_READ)  # type: ignore[arg-type]

            while True:
                self._check_interrupted(cancel, operation)
                events = selector.select(timeout)
                if not events:
                    return False
                ready = {key.fileobj for key, _mask in events}
                if self._signal_rx in ready:
                    self._drain_signal()
                self._check_interrupted(cancel, operation)
                if sock is not None and sock in ready:
                    return True

    def _check_interrupted(self, cancel: CancelToken | None, operation: str) -> None:
        if self._state is ChannelState.CLOSED:
            raise ChannelClosed(f"Channel {self.name} was closed during {operation}")
        if cancel is not None and cancel.cancelled:
            raise Cancelled(f"{operation} on {self.name} was cancelled")

    def _wake(self) -> None:
        tx = self._signal_tx
        if tx is None:
            return
        try:
            tx.send(b"\0")
        except BlockingIOError:
            # The pair is full, so a wake-up is already pending.
            pass
        except OSError:
            # Pair already released by close(); nothing is waiting on it.
            pass

    def _drain_signal(self) -> None:
        rx = self._signal_rx
        if rx is None:
            return
        while True:
            try:
                if not rx.recv(4096):
                    return
            except BlockingIOError:
                return

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        if self._state is not ChannelState.CONNECTED:
            return False
        sock = self._sock
        if sock is None or sock.fileno() == -1:
            return False
        try:
            readable, _, _ = select.select([sock], [], [], 0)
            if not readable:
                return True
            flags = socket.MSG_PEEK | getattr(socket, "MSG_DONTWAIT", 0)
            return sock.recv(1, flags) != b""
        except BlockingIOError:
            return True
        except (OSError, ValueError):
            return False

    def close(self) -> None:
        with self._state_lock:
            previous = self._state
            if previous is ChannelState.CLOSED:
                return
            self._state = ChannelState.CLOSED

        if previous is ChannelState.CONNECTING:
            # The connecting thread owns cleanup of its partial resources.
            self._wake()
            logger.info("SocketChannel %s closed while connecting", self.name)
            return
        if previous is ChannelState.UNCONNECTED:
            logger.debug("SocketChannel %s closed before connecting", self.name)
            return

        # Let a blocked receiver see the wake-up before its descriptors go
        # away; the bounded wait keeps close() from hanging on a stuck reader.
        self._wake()
        reader_idle = self._recv_lock.acquire(timeout=_CLOSE_READER_GRACE)
        try:
            sock = self._sock
            release(self._frames.clear, f"receive framer of {self.name}")
            if sock is not None:
                release(lambda: sock.shutdown(socket.SHUT_WR), f"send side of {self.name}")
                release(sock.close, f"peer socket of {self.name}")
            if self._server_sock is not None:
                release(self._server_sock.close, f"listening socket of {self.name}")
            self._release_signal_pair()
            self.listening.clear()
        finally:
            if reader_idle:
                self._recv_lock.release()

        logger.info("SocketChannel %s closed", self.name)

    def _release_signal_pair(self) -> None:
        for end in (self._signal_rx, self._signal_tx):
            if end is not None:
                release(end.close, f"wake-up socket of {self.name}")
