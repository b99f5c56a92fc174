"""Connection session: framed receive path and queued, pooled send path."""

from __future__ import annotations

import asyncio
import enum
import threading
import time
from collections import deque

from aosnet.buffer_pool import BUFFER_SIZE, GlobalPoolManager
from aosnet.recv_buffer import RecvBuffer
from aosnet.server_stat import ServerStat

HEADER_SIZE = 2


class OperationType(enum.Enum):
    """Kind of I/O operation a session last completed."""

    RECV = "recv"
    SEND = "send"
    ACCEPT = "accept"
    INVALID = "invalid"


class Session(asyncio.Protocol):
    """Base session for one client connection.

    Incoming bytes are framed by a 2-byte little-endian length header that
    counts the header itself. Outgoing packets are queued and written one at
    a time through a pooled buffer. Methods are meant to run on the event
    loop thread that owns the transport.
    """

    def __init__(
        self,
        stats: ServerStat | None = None,
        pool_manager: GlobalPoolManager | None = None,
    ) -> None:
        self._stats = stats
        self._pool_manager = pool_manager if pool_manager is not None else GlobalPoolManager.instance()
        self._transport: asyncio.BaseTransport | None = None
        self._connected = False
        self._recv_buffer = RecvBuffer()
        self._send_queue: deque[bytes] = deque()
        self._sending = False
        self.last_operation = OperationType.INVALID
        self.accepted_at: float | None = None
        self.bytes_sent = 0
        self.closed = threading.Event()

    # -- asyncio.Protocol -------------------------------------------------

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport
        self._connected = True
        self.last_operation = OperationType.ACCEPT
        if self._stats is not None:
            self._stats.inc_client()
        self.on_accept()

    def data_received(self, data: bytes) -> None:
        self.handle_recv(data)

    def connection_lost(self, exc: Exception | None) -> None:
        self.disconnect()

    # -- state --------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        """Close the connection once; later calls do nothing."""
        if not self._connected:
            return
        self._connected = False
        self._send_queue.clear()
        self._sending = False
        if self._transport is not None:
            self._transport.close()
        if self._stats is not None:
            self._stats.dec_client()
        self.on_disconnected()

    # -- sending ------------------------------------------------------------

    def post_send(self, data: bytes) -> None:
        """Queue ``data`` for sending; the first caller drives the queue."""
        if not self._connected:
            return
        packet = bytes(data)
        if len(packet) > BUFFER_SIZE:
            raise ValueError(f"packet of {len(packet)} bytes exceeds buffer size {BUFFER_SIZE}")
        self._send_queue.append(packet)
        if self._sending:
            return
        self._sending = True
        length = self._send_next()
        while length is not None:
            length = self.handle_send(length)

    def handle_send(self, length: int) -> int | None:
        """Finish a send of ``length`` bytes and start the next queued one.

        Returns the length of the send just started, or None once the queue
        is drained or the session is closed.
        """
        self.last_operation = OperationType.SEND
        next_length = self._send_next()
        self.on_send_complete(length)
        return next_length

    def _send_next(self) -> int | None:
        if not self._connected or not self._send_queue:
            self._sending = False
            return None
        packet = self._send_queue.popleft()
        size = len(packet)
        with self._pool_manager.my_pool().borrow() as buffer:
            buffer.data[:size] = packet
            try:
                self._transport.write(bytes(buffer.data[:size]))
            except OSError:
                self.disconnect()
                return None
        return size

    # -- receiving ----------------------------------------------------------

    def handle_recv(self, data: bytes) -> None:
        """Store ``data`` and dispatch every complete packet it finishes."""
        self.last_operation = OperationType.RECV
        try:
            self._recv_buffer.write(data)
        except BufferError:
            self.disconnect()
            return

        while self._connected and self._recv_buffer.stored_size >= HEADER_SIZE:
            packet_size = int.from_bytes(self._recv_buffer.peek(HEADER_SIZE), "little")
            if packet_size < HEADER_SIZE:
                self.disconnect()
                return
            if not self._recv_buffer.has_complete_packet(packet_size):
                break
            if self._stats is not None:
                self._stats.inc_packet()
            packet = self._recv_buffer.peek(packet_size)
            self._recv_buffer.consume(packet_size)
            self.on_recv_packet(packet)

    # -- hooks --------------------------------------------------------------

    def on_accept(self) -> None:
        """Called once the connection is established; records when."""
        self.accepted_at = time.monotonic()

    def on_recv(self, data: bytes) -> None:
        """Raw-data hook; the framing path does not call it."""

    def on_recv_packet(self, packet: bytes) -> None:
        """Called with each complete packet, header included."""

    def on_send_complete(self, length: int) -> None:
        """Called after ``length`` bytes were handed to the transport."""
        self.bytes_sent += length

    def on_disconnected(self) -> None:
        """Called once when the session closes; sets ``closed``."""
        self.closed.set()