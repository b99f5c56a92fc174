"""Echo server: every framed packet a client sends is written straight back."""

from __future__ import annotations

import argparse
import threading
from contextlib import contextmanager
from typing import Iterator

from aosnet.core import Listener, NetAddress, NetCore
from aosnet.server_stat import ServerStat
from aosnet.session import Session

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9001


class EchoSession(Session):
    """Session that sends every received packet back unchanged."""

    def on_recv(self, data: bytes) -> None:
        self.post_send(data)

    def on_recv_packet(self, packet: bytes) -> None:
        self.post_send(packet)

    def on_disconnected(self) -> None:
        super().on_disconnected()
        print("[Disconnect] client connection closed")


@contextmanager
def serve(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    thread_count: int = 1,
    stats: ServerStat | None = None,
) -> Iterator[Listener]:
    """Run an echo server for the duration of a ``with`` block.

    Yields the listener, whose ``bound_address`` gives the real port when
    ``port`` is 0.
    """
    address = NetAddress(host, port)
    core = NetCore()
    core.initialize(thread_count)
    core.run()
    listener = Listener(lambda: EchoSession(stats=stats))
    try:
        listener.start(core, address)
        yield listener
    finally:
        listener.stop()
        core.shutdown()


def main(argv: list[str] | None = None) -> int:
    """Start the echo server and run until interrupted."""
    parser = argparse.ArgumentParser(prog="aosnet-echo", description="Framed-packet echo server.")
    parser.add_argument("--host", default=DEFAULT_HOST, help="address to bind (default: %(default)s)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to bind (default: %(default)s)")
    parser.add_argument("--threads", type=int, default=1, help="worker threads (default: %(default)s)")
    parser.add_argument("--stat-interval", type=float, default=5.0, help="seconds between status lines")
    args = parser.parse_args(argv)

    stats = ServerStat(interval=args.stat_interval)
    stats.start()
    try:
        with serve(args.host, args.port, args.threads, stats) as listener:
            bound_host, bound_port = listener.bound_address
            print(f"listening on {bound_host}:{bound_port}")
            try:
                threading.Event().wait()
            except KeyboardInterrupt:
                pass
    finally:
        stats.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())