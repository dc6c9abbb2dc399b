"""A packet connection that periodically hops to a new local socket and server port."""

from __future__ import annotations

import random
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .hopaddr import UDPHopAddr, resolve_udphop_addr

PACKET_QUEUE_SIZE = 1024
UDP_BUFFER_SIZE = 2048
DEFAULT_HOP_INTERVAL = 30.0
MIN_HOP_INTERVAL = 5.0


class PacketConn(Protocol):
    def read_from(self, size: int) -> tuple[bytes, Any]: ...

    def write_to(self, data: bytes, addr: Any) -> int: ...

    def close(self) -> None: ...


ListenPacketFunc = Callable[[], PacketConn]


@dataclass
class _Packet:
    data: bytes = b""
    error: BaseException | None = None


def _closed_error() -> ConnectionError:
    return ConnectionError("use of closed network connection")


class UDPHopPacketConn:
    """Sends to a random port of the hop address, switching local socket and port each interval.

    Packets from the previous socket are still received until the next hop,
    so nothing sent during the switch is lost.
    """

    def __init__(
        self, addr: UDPHopAddr, hop_interval: float, listen_packet: ListenPacketFunc
    ) -> None:
        self.addr = addr
        self.addrs = addr.addrs()
        if not self.addrs:
            raise ValueError("no ports to hop between")
        self.hop_interval = hop_interval
        self._listen_packet = listen_packet
        self._lock = threading.Lock()
        self._queue: deque[_Packet] = deque()
        self._queue_ready = threading.Condition()
        self._closed = threading.Event()
        self._read_buffer_size = 0
        self._write_buffer_size = 0
        self._prev_conn: PacketConn | None = None
        self._current_conn = listen_packet()
        self._addr_index = random.randrange(len(self.addrs))
        self._start_receiving(self._current_conn)
        threading.Thread(target=self._hop_loop, daemon=True).start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _start_receiving(self, conn: PacketConn) -> None:
        threading.Thread(target=self._recv_loop, args=(conn,), daemon=True).start()

    def _recv_loop(self, conn: PacketConn) -> None:
        while True:
            try:
                data, _ = conn.read_from(UDP_BUFFER_SIZE)
            except TimeoutError as error:
                # Only timeouts are passed on; closing an old socket on hop is normal.
                self._enqueue(_Packet(error=error), force=True)
                return
            except Exception:
                return
            self._enqueue(_Packet(data=bytes(data)))

    def _enqueue(self, packet: _Packet, force: bool = False) -> None:
        with self._queue_ready:
            if force or len(self._queue) < PACKET_QUEUE_SIZE:
                self._queue.append(packet)
                self._queue_ready.notify()

    def _hop_loop(self) -> None:
        while not self._closed.wait(self.hop_interval):
            self.hop()

    def hop(self) -> None:
        """Switch to a fresh local socket and a new random server port."""
        with self._lock:
            if self._closed.is_set():
                return
            try:
                new_conn = self._listen_packet()
            except Exception:
                return
            if self._prev_conn is not None:
                _close_quietly(self._prev_conn)
            self._prev_conn = self._current_conn
            self._current_conn = new_conn
            if self._read_buffer_size > 0:
                _try_set_buffer(new_conn, "set_read_buffer", self._read_buffer_size)
            if self._write_buffer_size > 0:
                _try_set_buffer(new_conn, "set_write_buffer", self._write_buffer_size)
            self._start_receiving(new_conn)
            self._addr_index = random.randrange(len(self.addrs))

    def read_from(self, size: int) -> tuple[bytes, UDPHopAddr]:
        """Block for the next packet; the source is always reported as the hop address."""
        with self._queue_ready:
            while True:
                if self._closed.is_set():
                    raise _closed_error()
                if self._queue:
                    packet = self._queue.popleft()
                    break
                self._queue_ready.wait()
        if packet.error is not None:
            raise packet.error
        return packet.data[:size], self.addr

    def write_to(self, data: bytes, addr: Any = None) -> int:
        """Send ``data`` to the current server port, whatever ``addr`` is given."""
        with self._lock:
            if self._closed.is_set():
                raise _closed_error()
            return self._current_conn.write_to(data, self.addrs[self._addr_index])

    def close(self) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            try:
                if self._prev_conn is not None:
                    _close_quietly(self._prev_conn)
                self._current_conn.close()
            finally:
                self._closed.set()
                with self._queue_ready:
                    self._queue_ready.notify_all()

    def local_addr(self) -> Any:
        with self._lock:
            return self._current_conn.local_addr()

    def set_read_buffer(self, size: int) -> None:
        with self._lock:
            self._read_buffer_size = size
            if self._prev_conn is not None:
                _try_set_buffer(self._prev_conn, "set_read_buffer", size, quiet=True)
            _try_set_buffer(self._current_conn, "set_read_buffer", size)

    def set_write_buffer(self, size: int) -> None:
        with self._lock:
            self._write_buffer_size = size
            if self._prev_conn is not None:
                _try_set_buffer(self._prev_conn, "set_write_buffer", size, quiet=True)
            _try_set_buffer(self._current_conn, "set_write_buffer", size)

    def __enter__(self) -> UDPHopPacketConn:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _close_quietly(conn: PacketConn) -> None:
    try:
        conn.close()
    except Exception:
        pass


def _try_set_buffer(conn: PacketConn, method: str, size: int, quiet: bool = False) -> None:
    setter = getattr(conn, method, None)
    if setter is None:
        return
    try:
        setter(size)
    except Exception:
        if not quiet:
            raise


def new_udphop_packet_conn(
    addr: str, hop_ports: str, hop_interval: float, listen_packet: ListenPacketFunc
) -> UDPHopPacketConn:
    """Resolve the hop address and open a hopping connection.

    A ``hop_interval`` of 0 selects the default; otherwise it must be at least 5 seconds.
    """
    hop_addr = resolve_udphop_addr(addr, hop_ports)
    if hop_interval == 0:
        hop_interval = DEFAULT_HOP_INTERVAL
    elif hop_interval < MIN_HOP_INTERVAL:
        raise ValueError("hop interval must be at least 5 seconds")
    return UDPHopPacketConn(hop_addr, hop_interval, listen_packet)