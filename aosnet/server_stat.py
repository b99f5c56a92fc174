"""Server statistics: connected clients, packet rate and buffer usage."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from typing import TextIO

from aosnet.buffer_pool import GlobalPoolManager


@dataclass(frozen=True)
class StatSnapshot:
    """Counters sampled at one moment."""

    connected_clients: int
    packets: int
    tps: int
    total_buffers: int
    available_buffers: int


class ServerStat:
    """Thread-safe counters plus an optional background reporter."""

    def __init__(
        self,
        pool_manager: GlobalPoolManager | None = None,
        interval: float = 5.0,
        output: TextIO | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._pool_manager = pool_manager if pool_manager is not None else GlobalPoolManager.instance()
        self._interval = interval
        self._output = output
        self._lock = threading.Lock()
        self._clients = 0
        self._packets = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the background reporter thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("monitor already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._monitor, name="server-stat", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        """Stop the reporter and wait for it to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def inc_client(self) -> None:
        with self._lock:
            self._clients += 1

    def dec_client(self) -> None:
        with self._lock:
            self._clients -= 1

    def inc_packet(self) -> None:
        with self._lock:
            self._packets += 1

    @property
    def connected_clients(self) -> int:
        return self._clients

    def take_snapshot(self) -> StatSnapshot:
        """Sample the counters, resetting the packet count."""
        with self._lock:
            packets = self._packets
            self._packets = 0
            clients = self._clients
        return StatSnapshot(
            connected_clients=clients,
            packets=packets,
            tps=int(packets / self._interval),
            total_buffers=self._pool_manager.total_count,
            available_buffers=self._pool_manager.available_count,
        )

    def format_snapshot(self, snapshot: StatSnapshot) -> str:
        return (
            f"[server] clients: {snapshot.connected_clients}, "
            f"TPS: {snapshot.tps}, "
            f"buffers total: {snapshot.total_buffers}, "
            f"available: {snapshot.available_buffers}"
        )

    def _monitor(self) -> None:
        out = self._output if self._output is not None else sys.stdout
        while not self._stop.wait(self._interval):
            line = self.format_snapshot(self.take_snapshot())
            out.write(line + "\n")
            out.flush()