"""Receive buffer that accumulates stream bytes and hands out framed packets."""

from __future__ import annotations

INIT_RECV_BUFFER_SIZE = 8192


class RecvBuffer:
    """Fixed-capacity byte buffer with separate read and write positions.

    Free space in front of the unread data is reclaimed by compaction when
    a write would not fit otherwise, or once the read position passes the
    middle of the buffer.
    """

    def __init__(self, capacity: int = INIT_RECV_BUFFER_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._buffer = bytearray(capacity)
        self._read_pos = 0
        self._write_pos = 0

    @property
    def capacity(self) -> int:
        """Total number of bytes the buffer can hold."""
        return len(self._buffer)

    @property
    def stored_size(self) -> int:
        """Number of bytes written but not yet consumed."""
        return self._write_pos - self._read_pos

    def write(self, data: bytes) -> None:
        """Append ``data``; raise BufferError if it cannot fit even after compaction."""
        length = len(data)
        if self._write_pos + length > self.capacity:
            self._compact()
            if self._write_pos + length > self.capacity:
                raise BufferError(
                    f"receive buffer full: {self.stored_size} stored, "
                    f"{length} more requested, capacity {self.capacity}"
                )
        self._buffer[self._write_pos:self._write_pos + length] = data
        self._write_pos += length

    def has_complete_packet(self, packet_size: int) -> bool:
        """Return True if at least ``packet_size`` bytes are stored."""
        return self.stored_size >= packet_size

    def peek(self, size: int | None = None) -> bytes:
        """Return the next ``size`` unread bytes (all of them if None) without consuming."""
        if size is None:
            size = self.stored_size
        if size < 0 or size > self.stored_size:
            raise ValueError(f"cannot peek {size} bytes, {self.stored_size} stored")
        return bytes(self._buffer[self._read_pos:self._read_pos + size])

    def consume(self, length: int) -> None:
        """Mark ``length`` bytes as read."""
        if length < 0 or length > self.stored_size:
            raise ValueError(f"cannot consume {length} bytes, {self.stored_size} stored")
        self._read_pos += length
        if self._read_pos == self._write_pos:
            self._read_pos = 0
            self._write_pos = 0
        elif self._read_pos > self.capacity // 2:
            self._compact()

    def _compact(self) -> None:
        if self._read_pos == 0:
            return
        size = self.stored_size
        self._buffer[0:size] = self._buffer[self._read_pos:self._write_pos]
        self._read_pos = 0
        self._write_pos = size