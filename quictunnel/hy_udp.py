"""Hysteria (v1) UDP message framing carried in QUIC datagrams."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass

from .hyproto import ProtocolError
from .tuicaddr import SocksAddr
from .varint import read_exact

_PREFIX = struct.Struct(">IH")
_TRAILER = struct.Struct(">HHBBH")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


@dataclass
class HysteriaUDPMessage:
    """One UDP packet, or a fragment of one, addressed by host and port.

    Layout: session id (u32), host length (u16), host, port (u16), packet id (u16),
    fragment id (u8), fragment total (u8), data length (u16), data; all big-endian.
    """

    session_id: int = 0
    packet_id: int = 0
    fragment_id: int = 0
    fragment_total: int = 1
    host: str = ""
    port: int = 0
    data: bytes = b""

    @property
    def destination(self) -> SocksAddr:
        return SocksAddr(self.host, self.port)

    def header_size(self) -> int:
        return _PREFIX.size + len(_encode(self.host)) + _TRAILER.size

    def pack(self) -> bytes:
        host = _encode(self.host)
        return b"".join(
            (
                _PREFIX.pack(self.session_id, len(host)),
                host,
                _TRAILER.pack(
                    self.port,
                    self.packet_id,
                    self.fragment_id,
                    self.fragment_total,
                    len(self.data),
                ),
                self.data,
            )
        )


def decode_udp_message(data: bytes) -> HysteriaUDPMessage:
    """Decode one datagram; raise EOFError if truncated, ProtocolError on a length mismatch."""
    data = bytes(data)
    stream = io.BytesIO(data)
    session_id, host_length = _PREFIX.unpack(read_exact(stream, _PREFIX.size))
    host = _decode(read_exact(stream, host_length))
    port, packet_id, fragment_id, fragment_total, data_length = _TRAILER.unpack(
        read_exact(stream, _TRAILER.size)
    )
    payload = data[stream.tell():]
    if len(payload) != data_length:
        raise ProtocolError("invalid data length")
    return HysteriaUDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        fragment_id=fragment_id,
        fragment_total=fragment_total,
        host=host,
        port=port,
        data=payload,
    )