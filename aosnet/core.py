"""Event-loop core, listening endpoint and address helper."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Coroutine

from aosnet.session import Session


class NetAddress:
    """IPv4 address and port to bind to."""

    def __init__(self, ip: str, port: int) -> None:
        try:
            self._ip = str(ipaddress.IPv4Address(ip))
        except ValueError as exc:
            raise ValueError(f"invalid IPv4 address: {ip!r}") from exc
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        self._port = port

    @property
    def ip(self) -> str:
        return self._ip

    @property
    def port(self) -> int:
        return self._port

    @property
    def sockaddr(self) -> tuple[str, int]:
        return (self._ip, self._port)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NetAddress):
            return NotImplemented
        return self.sockaddr == other.sockaddr

    def __hash__(self) -> int:
        return hash(self.sockaddr)

    def __repr__(self) -> str:
        return f"NetAddress({self._ip!r}, {self._port})"


class NetCore:
    """Owns an event loop running on a background thread plus a worker pool."""

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._thread: threading.Thread | None = None
        self._thread_count = 0
        self._lock = threading.Lock()
        self._sessions: list[Session] = []
        self._servers: list[asyncio.AbstractServer] = []

    def initialize(self, thread_count: int) -> None:
        """Create the loop and a pool of ``thread_count`` worker threads."""
        if thread_count < 1:
            raise ValueError("thread_count must be at least 1")
        if self._loop is not None:
            raise RuntimeError("core already initialized")
        self._loop = asyncio.new_event_loop()
        self._executor = ThreadPoolExecutor(max_workers=thread_count, thread_name_prefix="netcore-worker")
        self._loop.set_default_executor(self._executor)
        self._thread_count = thread_count

    @property
    def thread_count(self) -> int:
        return self._thread_count

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """Start the event loop thread."""
        if self._loop is None:
            raise RuntimeError("core not initialized")
        if self.running:
            raise RuntimeError("core already running")
        started = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, args=(started,), name="netcore-loop", daemon=True)
        self._thread.start()
        started.wait()

    def _run_loop(self, started: threading.Event) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(started.set)
        self._loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        """Schedule ``coro`` on the loop and return a concurrent future."""
        if not self.running:
            coro.close()
            raise RuntimeError("core is not running")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def register(self, session: Session) -> None:
        """Track ``session`` so it is closed on shutdown."""
        with self._lock:
            self._sessions = [s for s in self._sessions if s.connected]
            self._sessions.append(session)

    @property
    def sessions(self) -> tuple[Session, ...]:
        """Registered sessions that are still connected."""
        with self._lock:
            return tuple(s for s in self._sessions if s.connected)

    def _track_server(self, server: asyncio.AbstractServer) -> None:
        with self._lock:
            self._servers.append(server)

    def _forget_server(self, server: asyncio.AbstractServer) -> None:
        with self._lock:
            if server in self._servers:
                self._servers.remove(server)

    async def _close_all(self) -> None:
        with self._lock:
            servers, self._servers = self._servers, []
            sessions, self._sessions = self._sessions, []
        for server in servers:
            server.close()
        for session in sessions:
            session.disconnect()
        # let transports deliver connection_lost before the loop stops
        for _ in range(3):
            await asyncio.sleep(0)

    def shutdown(self) -> None:
        """Close servers and sessions, stop the loop and the worker pool."""
        loop = self._loop
        if loop is None:
            return
        if self.running:
            self.submit(self._close_all()).result()
            loop.call_soon_threadsafe(loop.stop)
            self._thread.join()
        self._thread = None
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        self._loop = None
        self._executor = None
        self._thread_count = 0

    def __enter__(self) -> "NetCore":
        if self._loop is None:
            self.initialize(1)
        if not self.running:
            self.run()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


class Listener:
    """Accepts connections and hands each one to a new session."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._core: NetCore | None = None
        self._server: asyncio.AbstractServer | None = None

    def start(self, core: NetCore, bind_addr: NetAddress) -> None:
        """Bind and listen on ``bind_addr`` using ``core``'s loop."""
        if self._server is not None:
            raise RuntimeError("listener already started")
        host, port = bind_addr.sockaddr

        def protocol_factory() -> Session:
            session = self._session_factory()
            core.register(session)
            return session

        async def open_server() -> asyncio.AbstractServer:
            loop = asyncio.get_running_loop()
            return await loop.create_server(
                protocol_factory, host, port, family=socket.AF_INET, backlog=socket.SOMAXCONN
            )

        self._server = core.submit(open_server()).result()
        self._core = core
        core._track_server(self._server)

    @property
    def bound_address(self) -> tuple[str, int]:
        if self._server is None or not self._server.sockets:
            raise RuntimeError("listener is not started")
        host, port = self._server.sockets[0].getsockname()[:2]
        return (host, port)

    def stop(self) -> None:
        """Stop accepting connections; existing sessions stay open."""
        server, core = self._server, self._core
        if server is None or core is None:
            return
        self._server = None
        self._core = None
        core._forget_server(server)

        async def close() -> None:
            server.close()

        if core.running:
            core.submit(close()).result()