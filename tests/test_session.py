import pytest

from aosnet.buffer_pool import BUFFER_SIZE, GlobalPoolManager
from aosnet.recv_buffer import INIT_RECV_BUFFER_SIZE
from aosnet.server_stat import ServerStat
from aosnet.session import OperationType, Session


class FakeTransport:
    def __init__(self, fail=False):
        self.written = []
        self.closed = False
        self.fail = fail

    def write(self, data):
        if self.fail:
            raise OSError("broken pipe")
        self.written.append(bytes(data))

    def close(self):
        self.closed = True


class RecordingSession(Session):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.packets = []
        self.completed = []
        self.accepts = 0
        self.disconnects = 0

    def on_accept(self):
        self.accepts += 1

    def on_recv_packet(self, packet):
        self.packets.append(packet)

    def on_send_complete(self, length):
        self.completed.append(length)

    def on_disconnected(self):
        self.disconnects += 1


def frame(body):
    return (len(body) + 2).to_bytes(2, "little") + body


@pytest.fixture
def manager():
    return GlobalPoolManager()


@pytest.fixture
def stats(manager):
    return ServerStat(pool_manager=manager)


@pytest.fixture
def session(manager, stats):
    s = RecordingSession(stats=stats, pool_manager=manager)
    s.connection_made(FakeTransport())
    return s


def test_connection_made_marks_connected(session, stats):
    assert session.connected
    assert session.accepts == 1
    assert stats.connected_clients == 1
    assert session.last_operation is OperationType.ACCEPT


def test_complete_packet_dispatched(session):
    packet = frame(b"hello")
    session.data_received(packet)
    assert session.packets == [packet]
    assert session.last_operation is OperationType.RECV


def test_packet_split_across_reads(session):
    packet = frame(b"split-body")
    session.data_received(packet[:1])
    session.data_received(packet[1:4])
    assert session.packets == []
    session.data_received(packet[4:])
    assert session.packets == [packet]


def test_several_packets_in_one_read(session, stats):
    first, second = frame(b"a"), frame(b"bcd")
    session.data_received(first + second + second[:2])
    assert session.packets == [first, second]
    assert stats.take_snapshot().packets == 2
    session.data_received(second[2:])
    assert session.packets == [first, second, second]


def test_header_smaller_than_itself_disconnects(session):
    session.data_received(b"\x01\x00xyz")
    assert not session.connected
    assert session._transport.closed


def test_buffer_overflow_disconnects(session):
    session.data_received(b"\xff\xff" + bytes(INIT_RECV_BUFFER_SIZE - 2))
    assert session.connected
    session.data_received(b"\x00")
    assert not session.connected
    assert session.disconnects == 1


def test_post_send_writes_and_reports(session):
    session.post_send(b"payload")
    assert session._transport.written == [b"payload"]
    assert session.completed == [len(b"payload")]


def test_post_send_uses_pool(session, manager):
    session.post_send(b"one")
    session.post_send(b"two")
    assert manager.total_count == manager.available_count
    assert manager.my_pool().total_count == manager.total_count


def test_post_send_when_disconnected_is_dropped(session):
    session.disconnect()
    session.post_send(b"late")
    assert session._transport.written == []


def test_post_send_rejects_oversize(session):
    with pytest.raises(ValueError):
        session.post_send(bytes(BUFFER_SIZE + 1))
    session.post_send(bytes(BUFFER_SIZE))
    assert session._transport.written == [bytes(BUFFER_SIZE)]


def test_send_from_completion_is_queued_in_order(manager):
    class Chained(RecordingSession):
        def on_send_complete(self, length):
            super().on_send_complete(length)
            if len(self.completed) == 1:
                self.post_send(b"second")

    s = Chained(pool_manager=manager)
    transport = FakeTransport()
    s.connection_made(transport)
    s.post_send(b"first")
    assert transport.written == [b"first", b"second"]
    assert s.completed == [5, 6]


def test_write_error_disconnects(manager):
    s = RecordingSession(pool_manager=manager)
    transport = FakeTransport(fail=True)
    s.connection_made(transport)
    s.post_send(b"data")
    assert not s.connected
    assert s.completed == []
    assert manager.available_count == manager.total_count


def test_disconnect_runs_once(session, stats):
    session.disconnect()
    session.disconnect()
    session.connection_lost(None)
    assert session.disconnects == 1
    assert stats.connected_clients == 0
    assert session._transport.closed


def test_connection_lost_disconnects(session):
    session.connection_lost(ConnectionResetError())
    assert not session.connected
    assert session.disconnects == 1


def test_echo_from_packet_hook(manager):
    class Echo(Session):
        def on_recv_packet(self, packet):
            self.post_send(packet)

    s = Echo(pool_manager=manager)
    transport = FakeTransport()
    s.connection_made(transport)
    packet = frame(b"echo me")
    s.data_received(packet)
    assert transport.written == [packet]