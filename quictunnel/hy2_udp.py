"""Hysteria 2 UDP message framing carried in QUIC datagrams."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass

from .hy2proto import read_vstring
from .tuicaddr import SocksAddr
from .varint import encode_varint, read_exact, varint_len

_HEADER = struct.Struct(">IHBB")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


@dataclass
class Hysteria2UDPMessage:
    """One UDP packet, or a fragment of one, addressed by a ``host:port`` string.

    Layout: session id (u32), packet id (u16), fragment id (u8), fragment total (u8),
    address length (QUIC varint), address, data.
    """

    session_id: int = 0
    packet_id: int = 0
    fragment_id: int = 0
    fragment_total: int = 1
    address: str = ""
    data: bytes = b""

    @property
    def destination(self) -> SocksAddr:
        return SocksAddr.parse(self.address)

    def header_size(self) -> int:
        length = len(_encode(self.address))
        return _HEADER.size + varint_len(length) + length

    def pack(self) -> bytes:
        address = _encode(self.address)
        return b"".join(
            (
                _HEADER.pack(
                    self.session_id, self.packet_id, self.fragment_id, self.fragment_total
                ),
                encode_varint(len(address)),
                address,
                self.data,
            )
        )


def decode_udp_message(data: bytes) -> Hysteria2UDPMessage:
    """Decode one datagram; raise EOFError if the header is truncated."""
    data = bytes(data)
    stream = io.BytesIO(data)
    session_id, packet_id, fragment_id, fragment_total = _HEADER.unpack(
        read_exact(stream, _HEADER.size)
    )
    address = read_vstring(stream)
    return Hysteria2UDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        fragment_id=fragment_id,
        fragment_total=fragment_total,
        address=address,
        data=data[stream.tell():],
    )