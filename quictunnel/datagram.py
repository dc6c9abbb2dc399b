"""UDP-over-QUIC datagram sessions: fragmentation, reassembly and the per-session packet queue.

The wire format of a message belongs to each protocol. This module works with any
dataclass message that has ``session_id``, ``packet_id``, ``fragment_id``,
``fragment_total``, ``data`` and ``destination`` fields and ``header_size()`` and
``pack()`` methods.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Optional, Protocol, TypeVar

MAX_DATAGRAM_PAYLOAD = 0xFFFF
MAX_PACKET_ID = 0xFFFF
PACKET_QUEUE_SIZE = 64
DEFRAG_MAX_AGE = 10.0
MTU_MEMORY = 5.0


class MessageTooLargeError(Exception):
    """Raised by a transport when a datagram exceeds ``max_size`` bytes."""

    def __init__(self, max_size: int) -> None:
        super().__init__(f"message too large (maximum: {max_size} bytes)")
        self.max_size = max_size


class ConnectionClosedError(ConnectionError):
    """Raised when using a packet session that has been closed."""


class DatagramMessage(Protocol):
    session_id: int
    packet_id: int
    fragment_id: int
    fragment_total: int
    data: bytes
    destination: Any

    def header_size(self) -> int: ...

    def pack(self) -> bytes: ...


M = TypeVar("M", bound=DatagramMessage)


def fragment_message(message: M, max_packet_size: int) -> list[M]:
    """Split ``message`` so that every fragment fits ``max_packet_size`` bytes.

    A message whose payload already fits is returned alone and unchanged.
    """
    data = message.data
    if len(data) <= max_packet_size:
        return [message]
    chunk_size = max_packet_size - message.header_size()
    if chunk_size <= 0:
        raise ValueError(f"packet size {max_packet_size} leaves no room for payload")
    chunks = [data[start:start + chunk_size] for start in range(0, len(data), chunk_size)]
    total = len(chunks) & 0xFF
    return [
        replace(message, data=chunk, fragment_id=index & 0xFF, fragment_total=total)
        for index, chunk in enumerate(chunks)
    ]


@dataclass
class _PacketItem:
    last_access: float
    fragments: Optional[list] = None
    count: int = 0


class Defragger:
    """Reassembles fragmented messages keyed by packet id.

    Incomplete packets are forgotten after ``max_age`` seconds without a new fragment.
    """

    def __init__(
        self, max_age: float = DEFRAG_MAX_AGE, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.max_age = max_age
        self._clock = clock
        self._items: OrderedDict[int, _PacketItem] = OrderedDict()
        self._lock = threading.Lock()

    def _expire(self, now: float) -> None:
        stale = [key for key, item in self._items.items() if now - item.last_access > self.max_age]
        for key in stale:
            del self._items[key]

    def feed(self, message: M) -> Optional[M]:
        """Add a fragment; return the whole message once every fragment has arrived."""
        if message.fragment_total <= 1:
            return message
        if message.fragment_id >= message.fragment_total:
            return None
        with self._lock:
            now = self._clock()
            self._expire(now)
            item = self._items.get(message.packet_id)
            if item is None:
                item = _PacketItem(last_access=now)
                self._items[message.packet_id] = item
            else:
                self._items.move_to_end(message.packet_id)
            item.last_access = now
            if item.fragments is None or len(item.fragments) != message.fragment_total:
                item.fragments = [None] * message.fragment_total
                item.fragments[message.fragment_id] = message
                item.count = 1
                return None
            if item.fragments[message.fragment_id] is not None:
                return None
            item.fragments[message.fragment_id] = message
            item.count += 1
            if item.count != len(item.fragments):
                return None
            fragments = item.fragments
            item.fragments = None
            data = b"".join(fragment.data for fragment in fragments)
            if not data:
                return None
            return replace(
                fragments[0],
                session_id=message.session_id,
                packet_id=message.packet_id,
                fragment_id=0,
                fragment_total=1,
                data=data,
            )


MessageBuilder = Callable[[int, int, bytes, Any], DatagramMessage]


class UDPPacketConn:
    """One UDP session multiplexed over a QUIC connection's datagrams.

    ``send_datagram`` sends packed bytes and may raise :class:`MessageTooLargeError`;
    the session then remembers that size for a while and fragments proactively.
    ``build_message(session_id, packet_id, data, destination)`` creates outgoing messages.
    """

    def __init__(
        self,
        send_datagram: Callable[[bytes], Any],
        build_message: MessageBuilder,
        on_destroy: Optional[Callable[[], Any]] = None,
        *,
        session_id: int = 0,
        proactive_fragmentation: bool = True,
        queue_size: int = PACKET_QUEUE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self.error: Optional[BaseException] = None
        self._send_datagram = send_datagram
        self._build_message = build_message
        self._on_destroy = on_destroy
        self._proactive_fragmentation = proactive_fragmentation
        self._queue_size = queue_size
        self._clock = clock
        self._queue: deque = deque()
        self._ready = threading.Condition()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._id_lock = threading.Lock()
        self._packet_id = 0
        self._udp_mtu = 0
        self._udp_mtu_time = 0.0
        self.defragger = Defragger(clock=clock)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def read_packet(self, timeout: Optional[float] = None) -> tuple[bytes, Any]:
        """Wait for the next packet and return its payload and source address."""
        with self._ready:
            ready = self._ready.wait_for(
                lambda: self._closed.is_set() or bool(self._queue), timeout
            )
            if not ready:
                raise TimeoutError("no packet within timeout")
            if self._closed.is_set():
                raise ConnectionClosedError("read on closed packet session") from self.error
            message = self._queue.popleft()
        return message.data, message.destination

    def _next_packet_id(self) -> int:
        with self._id_lock:
            self._packet_id += 1
            if self._packet_id > MAX_PACKET_ID:
                self._packet_id = 0
            return self._packet_id

    def _need_fragment(self) -> bool:
        now = self._clock()
        if self._udp_mtu > 0 and now - self._udp_mtu_time < MTU_MEMORY:
            self._udp_mtu_time = now
            return True
        return False

    def _write(self, message: DatagramMessage) -> None:
        self._send_datagram(message.pack())

    def _write_all(self, messages: list) -> None:
        for message in messages:
            self._write(message)

    def write_packet(self, data: bytes, destination: Any) -> int:
        """Send ``data`` to ``destination``, fragmenting when the path needs it."""
        if self._closed.is_set():
            raise ConnectionClosedError("write on closed packet session")
        data = bytes(data)
        if len(data) > MAX_DATAGRAM_PAYLOAD:
            raise MessageTooLargeError(MAX_DATAGRAM_PAYLOAD)
        message = self._build_message(self.session_id, self._next_packet_id(), data, destination)
        try:
            if (
                self._proactive_fragmentation
                and self._need_fragment()
                and len(data) > self._udp_mtu
            ):
                self._write_all(fragment_message(message, self._udp_mtu))
            else:
                self._write(message)
        except MessageTooLargeError as error:
            self._udp_mtu = error.max_size
            self._udp_mtu_time = self._clock()
            self._write_all(fragment_message(message, self._udp_mtu))
        return len(data)

    def input_packet(self, message: DatagramMessage) -> None:
        """Queue a received message, reassembling fragments; drops it if the queue is full."""
        if message.fragment_total > 1:
            message = self.defragger.feed(message)
            if message is None:
                return
        with self._ready:
            if len(self._queue) < self._queue_size:
                self._queue.append(message)
                self._ready.notify()

    def close_with_error(self, error: BaseException) -> None:
        """Close the session once, recording ``error`` and running the destroy callback."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self.error = error
            with self._ready:
                self._closed.set()
                self._ready.notify_all()
        if self._on_destroy is not None:
            self._on_destroy()

    def close(self) -> None:
        self.close_with_error(ConnectionClosedError("packet session closed"))

    def __enter__(self) -> UDPPacketConn:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()