import socket
import struct
import time

import pytest

from aosnet.buffer_pool import GlobalPoolManager
from aosnet.echo_server import EchoSession, main, serve
from aosnet.server_stat import ServerStat


class FakeTransport:
    def __init__(self):
        self.written = []
        self.closed = False

    def write(self, data):
        self.written.append(bytes(data))

    def close(self):
        self.closed = True


def frame(payload: bytes) -> bytes:
    return struct.pack("<H", len(payload) + 2) + payload


def recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = b""
    while len(chunks) < size:
        data = sock.recv(size - len(chunks))
        if not data:
            break
        chunks += data
    return chunks


def make_session():
    session = EchoSession(pool_manager=GlobalPoolManager())
    transport = FakeTransport()
    session.connection_made(transport)
    return session, transport


def test_packet_is_echoed_to_transport():
    session, transport = make_session()
    packet = frame(b"abc")
    session.data_received(packet)
    assert transport.written == [packet]


def test_partial_packet_is_held_until_complete():
    session, transport = make_session()
    packet = frame(b"hello world")
    session.data_received(packet[:4])
    assert transport.written == []
    session.data_received(packet[4:])
    assert transport.written == [packet]


def test_on_recv_echoes_raw_data():
    session, transport = make_session()
    session.on_recv(b"raw bytes")
    assert transport.written == [b"raw bytes"]


def test_disconnect_prints_message(capsys):
    session, transport = make_session()
    session.disconnect()
    assert transport.closed is True
    assert "[Disconnect]" in capsys.readouterr().out


def test_serve_echoes_over_tcp():
    with serve("127.0.0.1", 0, 1) as listener:
        host, port = listener.bound_address
        with socket.create_connection((host, port), timeout=5) as sock:
            packet = frame(b"ping")
            sock.sendall(packet)
            assert recv_exact(sock, len(packet)) == packet


def test_serve_echoes_two_packets_sent_together():
    with serve("127.0.0.1", 0, 1) as listener:
        with socket.create_connection(listener.bound_address, timeout=5) as sock:
            first, second = frame(b"one"), frame(b"second packet")
            sock.sendall(first + second)
            assert recv_exact(sock, len(first) + len(second)) == first + second


def test_serve_counts_clients_and_packets():
    stats = ServerStat(pool_manager=GlobalPoolManager())
    with serve("127.0.0.1", 0, 1, stats) as listener:
        with socket.create_connection(listener.bound_address, timeout=5) as sock:
            packet = frame(b"x" * 10)
            sock.sendall(packet)
            assert recv_exact(sock, len(packet)) == packet
            assert stats.connected_clients == 1
            assert stats.take_snapshot().packets == 1
        deadline = time.monotonic() + 5
        while stats.connected_clients and time.monotonic() < deadline:
            time.sleep(0.01)
        assert stats.connected_clients == 0


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit):
        main(["--port", "not-a-port"])