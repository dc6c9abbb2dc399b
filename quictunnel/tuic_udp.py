"""TUIC UDP message framing, used in QUIC datagrams and on unidirectional streams."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass, field, replace
from typing import BinaryIO

from .datagram import fragment_message
from .tuicaddr import VERSION, Command, SocksAddr, address_length, read_address, write_address
from .varint import read_exact

_PREFIX = struct.Struct(">BB")
_HEADER = struct.Struct(">HHBBH")
_SESSION_ID = struct.Struct(">H")


@dataclass
class TUICUDPMessage:
    """One UDP packet, or a fragment of one.

    Layout: version (u8), command (u8), session id (u16), packet id (u16),
    fragment total (u8), fragment id (u8), data length (u16), address, data;
    all big-endian. Fragments after the first carry no address.
    """

    session_id: int = 0
    packet_id: int = 0
    fragment_total: int = 1
    fragment_id: int = 0
    destination: SocksAddr = field(default_factory=SocksAddr)
    data: bytes = b""

    def header_size(self) -> int:
        return _PREFIX.size + _HEADER.size + address_length(self.destination)

    def pack(self) -> bytes:
        return b"".join(
            (
                _PREFIX.pack(VERSION, Command.PACKET),
                _HEADER.pack(
                    self.session_id,
                    self.packet_id,
                    self.fragment_total,
                    self.fragment_id,
                    len(self.data),
                ),
                write_address(self.destination),
                self.data,
            )
        )


def fragment_tuic_message(
    message: TUICUDPMessage, max_packet_size: int
) -> list[TUICUDPMessage]:
    """Split ``message`` to fit ``max_packet_size``; only the first fragment keeps the address."""
    fragments = fragment_message(message, max_packet_size)
    if len(fragments) == 1:
        return fragments
    return [fragments[0]] + [replace(fragment, destination=SocksAddr()) for fragment in fragments[1:]]


def _read_header(stream: BinaryIO) -> tuple[TUICUDPMessage, int]:
    session_id, packet_id, fragment_total, fragment_id, data_length = _HEADER.unpack(
        read_exact(stream, _HEADER.size)
    )
    message = TUICUDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        fragment_total=fragment_total,
        fragment_id=fragment_id,
        destination=read_address(stream),
    )
    return message, data_length


def decode_udp_message(data: bytes) -> TUICUDPMessage:
    """Decode a datagram body that follows the version and command bytes.

    Raises EOFError when the header is truncated or the payload length does not match.
    """
    data = bytes(data)
    stream = io.BytesIO(data)
    message, data_length = _read_header(stream)
    payload = data[stream.tell():]
    if len(payload) != data_length:
        raise EOFError("unexpected EOF")
    message.data = payload
    return message


def read_udp_message(stream: BinaryIO) -> TUICUDPMessage:
    """Read one message body (after version and command) from a stream."""
    message, data_length = _read_header(stream)
    message.data = read_exact(stream, data_length)
    return message


def encode_dissociate(session_id: int) -> bytes:
    """Encode the command that tells the peer a UDP session has ended."""
    return _PREFIX.pack(VERSION, Command.DISSOCIATE) + _SESSION_ID.pack(session_id)