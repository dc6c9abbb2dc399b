import queue
import threading

import pytest

from quictunnel.hopaddr import InvalidPortError
from quictunnel.hopconn import new_udphop_packet_conn

_CLOSED = object()


class FakeConn:
    def __init__(self, index):
        self.index = index
        self.incoming = queue.Queue()
        self.sent = []
        self.closed = False
        self.read_buffer = None
        self.write_buffer = None

    def read_from(self, size):
        item = self.incoming.get()
        if item is _CLOSED:
            raise OSError("closed")
        if isinstance(item, BaseException):
            raise item
        return item[:size], ("203.0.113.9", 9999)

    def write_to(self, data, addr):
        self.sent.append((data, addr))
        return len(data)

    def close(self):
        self.closed = True
        self.incoming.put(_CLOSED)

    def local_addr(self):
        return ("0.0.0.0", 40000 + self.index)

    def set_read_buffer(self, size):
        self.read_buffer = size

    def set_write_buffer(self, size):
        self.write_buffer = size


@pytest.fixture
def conns():
    return []


@pytest.fixture
def hop_conn(conns):
    def listen():
        conn = FakeConn(len(conns))
        conns.append(conn)
        return conn

    conn = new_udphop_packet_conn("127.0.0.1", "4000-4002", 60, listen)
    yield conn
    conn.close()


def test_write_goes_to_a_hop_port(hop_conn, conns):
    assert hop_conn.write_to(b"ping", None) == 4
    data, addr = conns[0].sent[0]
    assert data == b"ping"
    assert addr in hop_conn.addrs


def test_read_reports_hop_address(hop_conn, conns):
    conns[0].incoming.put(b"hello")
    data, addr = hop_conn.read_from(2048)
    assert data == b"hello"
    assert addr is hop_conn.addr


def test_read_truncates_to_size(hop_conn, conns):
    conns[0].incoming.put(b"abcdef")
    data, _ = hop_conn.read_from(3)
    assert data == b"abc"


def test_hop_switches_conn_and_keeps_previous(hop_conn, conns):
    hop_conn.hop()
    assert len(conns) == 2
    assert not conns[0].closed
    hop_conn.write_to(b"x", None)
    assert conns[1].sent and not conns[0].sent
    conns[0].incoming.put(b"late")
    assert hop_conn.read_from(100)[0] == b"late"
    hop_conn.hop()
    assert conns[0].closed
    assert not conns[1].closed


def test_local_addr_follows_current_conn(hop_conn, conns):
    assert hop_conn.local_addr() == conns[0].local_addr()
    hop_conn.hop()
    assert hop_conn.local_addr() == conns[1].local_addr()


def test_buffer_sizes_apply_after_hop(hop_conn, conns):
    hop_conn.set_read_buffer(1 << 20)
    hop_conn.set_write_buffer(1 << 19)
    assert conns[0].read_buffer == 1 << 20
    hop_conn.hop()
    assert hop_conn.local_addr() == ("0.0.0.0", 40001)
    assert conns[1].read_buffer == 1 << 20
    assert conns[1].write_buffer == 1 << 19


def test_timeout_error_is_passed_to_reader(hop_conn, conns):
    conns[0].incoming.put(TimeoutError("timed out"))
    with pytest.raises(TimeoutError):
        hop_conn.read_from(100)


def test_close_stops_io(hop_conn, conns):
    hop_conn.hop()
    hop_conn.close()
    assert conns[0].closed and conns[1].closed
    assert hop_conn.closed
    with pytest.raises(ConnectionError):
        hop_conn.write_to(b"x", None)
    with pytest.raises(ConnectionError):
        hop_conn.read_from(10)
    hop_conn.close()
    hop_conn.hop()
    assert len(conns) == 2


def test_close_unblocks_reader(hop_conn):
    outcomes = []

    def reader():
        try:
            outcomes.append(hop_conn.read_from(10))
        except ConnectionError as error:
            outcomes.append(error)

    thread = threading.Thread(target=reader)
    thread.start()
    hop_conn.close()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert hop_conn.closed is True
    assert len(outcomes) == 1
    with pytest.raises(ConnectionError):
        raise outcomes[0]
    with pytest.raises(ConnectionError):
        hop_conn.read_from(10)


def test_default_hop_interval():
    conn = new_udphop_packet_conn("127.0.0.1", "4000", 0, lambda: FakeConn(0))
    try:
        assert conn.hop_interval == 30.0
    finally:
        conn.close()


def test_short_hop_interval_rejected():
    with pytest.raises(ValueError, match="at least 5 seconds"):
        new_udphop_packet_conn("127.0.0.1", "4000", 2, lambda: FakeConn(0))


def test_bad_ports_rejected():
    with pytest.raises(InvalidPortError):
        new_udphop_packet_conn("127.0.0.1", "nope", 10, lambda: FakeConn(0))