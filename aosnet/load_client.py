"""Load generator that measures round-trip latency against an echo server."""

from __future__ import annotations

import argparse
import selectors
import socket
import sys
import threading
import time
from dataclasses import dataclass
from typing import TextIO

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9001
PAYLOAD_SIZE = 64
CLIENT_PAYLOAD = b"B" + bytes(PAYLOAD_SIZE - 1)
SINGLE_PAYLOAD = b"S" + bytes(PAYLOAD_SIZE - 1)

_output_lock = threading.Lock()


def _emit(line: str, output: TextIO | None) -> None:
    out = output if output is not None else sys.stdout
    with _output_lock:
        out.write(line + "\n")
        out.flush()


def build_packet(payload: bytes = CLIENT_PAYLOAD) -> bytes:
    """Prefix ``payload`` with a 2-byte little-endian length that counts the header."""
    size = len(payload) + 2
    if size > 0xFFFF:
        raise ValueError(f"payload of {len(payload)} bytes is too large for a packet")
    return size.to_bytes(2, "little") + bytes(payload)


@dataclass(frozen=True)
class LatencySummary:
    """Round-trip figures collected over one interval."""

    count: int
    total_micros: int
    min_micros: int | None
    max_micros: int

    @property
    def average(self) -> int:
        return int(self.total_micros / self.count) if self.count else 0


class LatencyStats:
    """Thread-safe accumulator of round-trip times in microseconds."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._count = 0
        self._total = 0
        self._min: int | None = None
        self._max = 0

    def record(self, micros: int) -> None:
        with self._lock:
            self._count += 1
            self._total += micros
            if micros > self._max:
                self._max = micros
            if self._min is None or micros < self._min:
                self._min = micros

    def take(self) -> LatencySummary:
        """Return the collected figures and start a new interval."""
        with self._lock:
            summary = LatencySummary(self._count, self._total, self._min, self._max)
            self._reset()
        return summary


def format_summary(label: str, summary: LatencySummary, interval: float) -> str:
    """Render one status line for ``summary`` gathered over ``interval`` seconds."""
    if summary.count == 0:
        return f"[{label}] no responses in {interval:g}s"
    tps = int(summary.count / interval)
    return (
        f"[{label}] TPS: {tps}, avg: {summary.average} us, "
        f"min: {summary.min_micros} us, max: {summary.max_micros} us"
    )


@dataclass
class _ClientState:
    sock: socket.socket
    sent_at: int = 0
    waiting: bool = False


def client_loop(
    host: str,
    port: int,
    client_count: int,
    stats: LatencyStats,
    stop_event: threading.Event,
) -> None:
    """Open ``client_count`` connections and keep one packet in flight on each."""
    selector = selectors.DefaultSelector()
    clients: list[_ClientState] = []

    def drop(state: _ClientState) -> None:
        selector.unregister(state.sock)
        state.sock.close()
        clients.remove(state)

    try:
        for index in range(client_count):
            try:
                sock = socket.create_connection((host, port), timeout=5)
            except OSError as exc:
                print(f"[client {index}] connect failed: {exc}", file=sys.stderr)
                continue
            state = _ClientState(sock)
            selector.register(sock, selectors.EVENT_READ, state)
            clients.append(state)
            time.sleep(0.001)

        packet = build_packet(CLIENT_PAYLOAD)
        while clients and not stop_event.is_set():
            for state in list(clients):
                if state.waiting:
                    continue
                try:
                    state.sock.sendall(packet)
                except OSError:
                    drop(state)
                    continue
                state.sent_at = time.perf_counter_ns()
                state.waiting = True

            if not clients:
                break
            for key, _ in selector.select(timeout=0.01):
                state = key.data
                try:
                    data = state.sock.recv(len(packet))
                except OSError:
                    data = b""
                if not data:
                    drop(state)
                    continue
                if state.waiting:
                    stats.record((time.perf_counter_ns() - state.sent_at) // 1000)
                    state.waiting = False

            stop_event.wait(0.001)
    finally:
        for state in clients:
            state.sock.close()
        selector.close()


def single_client_monitor(
    host: str,
    port: int,
    interval: float,
    stop_event: threading.Event,
    output: TextIO | None = None,
) -> None:
    """Measure send-then-receive latency on one dedicated connection."""
    try:
        sock = socket.create_connection((host, port), timeout=5)
    except OSError as exc:
        print(f"[single client] connect failed: {exc}", file=sys.stderr)
        return

    packet = build_packet(SINGLE_PAYLOAD)
    stats = LatencyStats()
    last_print = time.monotonic()
    with sock:
        while not stop_event.is_set():
            start = time.perf_counter_ns()
            try:
                sock.sendall(packet)
                data = sock.recv(len(packet))
            except OSError:
                data = b""
            end = time.perf_counter_ns()
            if not data:
                print("[single client] receive failed", file=sys.stderr)
                break
            stats.record((end - start) // 1000)

            now = time.monotonic()
            if now - last_print >= interval:
                summary = stats.take()
                if summary.count:
                    _emit(format_summary("single client", summary, interval), output)
                last_print = now
            stop_event.wait(0.005)


def monitor_loop(
    stats: LatencyStats,
    client_count: int,
    interval: float,
    stop_event: threading.Event,
    output: TextIO | None = None,
) -> None:
    """Print a summary of ``stats`` every ``interval`` seconds until stopped."""
    while not stop_event.wait(interval):
        _emit(format_summary(f"clients: {client_count}", stats.take(), interval), output)


def _client_worker(
    index: int,
    host: str,
    port: int,
    client_count: int,
    stats: LatencyStats,
    stop_event: threading.Event,
) -> None:
    _emit(f"[worker {index}] started, clients: {client_count}", None)
    client_loop(host, port, client_count, stats, stop_event)


def main(argv: list[str] | None = None) -> int:
    """Run the load test until interrupted or for ``--duration`` seconds."""
    parser = argparse.ArgumentParser(prog="aosnet-load", description="Echo server load generator.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="server address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="server port (default: %(default)s)")
    parser.add_argument("--clients", type=int, default=1000, help="total clients (default: %(default)s)")
    parser.add_argument("--per-thread", type=int, default=500, help="clients per worker thread")
    parser.add_argument("--interval", type=float, default=5.0, help="seconds between reports")
    parser.add_argument("--duration", type=float, default=None, help="stop after this many seconds")
    args = parser.parse_args(argv)
    if args.per_thread < 1:
        parser.error("--per-thread must be at least 1")
    if args.interval <= 0:
        parser.error("--interval must be positive")

    stop_event = threading.Event()
    stats = LatencyStats()
    worker_count = (args.clients - 1) // args.per_thread

    monitor = threading.Thread(
        target=monitor_loop,
        args=(stats, args.clients, args.interval, stop_event),
        name="load-monitor",
        daemon=True,
    )
    monitor.start()

    workers = [
        threading.Thread(
            target=_client_worker,
            args=(index, args.host, args.port, args.per_thread, stats, stop_event),
            name=f"load-worker-{index}",
            daemon=True,
        )
        for index in range(worker_count)
    ]
    for worker in workers:
        worker.start()

    single = threading.Thread(
        target=single_client_monitor,
        args=(args.host, args.port, args.interval, stop_event),
        name="load-single",
        daemon=True,
    )
    single.start()

    try:
        if args.duration is None:
            for worker in workers:
                worker.join()
        else:
            stop_event.wait(args.duration)
    except KeyboardInterrupt:
        pass
    finally:
        stop_event.set()
        for thread in (*workers, single, monitor):
            thread.join(timeout=10)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())