"""Hysteria 2 wire protocol: HTTP authentication headers, TCP framing and UDP messages."""

from __future__ import annotations

import io
import random
import struct
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import BinaryIO

from .varint import encode_varint, read_exact, read_varint, varint_len

URL_HOST = "hysteria"
URL_PATH = "/auth"

REQUEST_HEADER_AUTH = "Hysteria-Auth"
RESPONSE_HEADER_UDP_ENABLED = "Hysteria-UDP"
COMMON_HEADER_CC_RX = "Hysteria-CC-RX"
COMMON_HEADER_PADDING = "Hysteria-Padding"

STATUS_AUTH_OK = 233

FRAME_TYPE_TCP_REQUEST = 0x401

MAX_ADDRESS_LENGTH = 2048
MAX_MESSAGE_LENGTH = 2048
MAX_PADDING_LENGTH = 4096
MAX_UDP_SIZE = 4096

PADDING_CHARS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

_UINT64_MAX = (1 << 64) - 1
_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_UDP_HEADER = struct.Struct(">IHBB")


class ProtocolError(ValueError):
    """Raised when a peer sends a malformed protocol frame."""


@dataclass(frozen=True)
class Padding:
    """A half-open length range ``[min, max)`` for random padding strings."""

    min: int
    max: int

    def generate(self) -> str:
        length = self.min + random.randrange(self.max - self.min)
        return "".join(random.choices(PADDING_CHARS, k=length))


AUTH_REQUEST_PADDING = Padding(256, 2048)
AUTH_RESPONSE_PADDING = Padding(256, 2048)
TCP_REQUEST_PADDING = Padding(64, 512)
TCP_RESPONSE_PADDING = Padding(128, 1024)


@dataclass
class AuthRequest:
    """What the client sends to authenticate; ``rx`` of 0 asks for bandwidth detection."""

    auth: str = ""
    rx: int = 0


@dataclass
class AuthResponse:
    """What the server answers on success; ``rx`` of 0 means unlimited."""

    udp_enabled: bool = False
    rx: int = 0
    rx_auto: bool = False


def _header_get(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return ""


def _header_set(headers: MutableMapping[str, str], name: str, value: str) -> None:
    lowered = name.lower()
    for key in [key for key in headers if key.lower() == lowered and key != name]:
        del headers[key]
    headers[name] = value


def _parse_uint(text: str) -> int:
    if not text or not text.isascii() or not text.isdigit():
        return 0
    return min(int(text), _UINT64_MAX)


def auth_request_from_headers(headers: Mapping[str, str]) -> AuthRequest:
    return AuthRequest(
        auth=_header_get(headers, REQUEST_HEADER_AUTH),
        rx=_parse_uint(_header_get(headers, COMMON_HEADER_CC_RX)),
    )


def auth_request_to_headers(headers: MutableMapping[str, str], request: AuthRequest) -> None:
    _header_set(headers, REQUEST_HEADER_AUTH, request.auth)
    _header_set(headers, COMMON_HEADER_CC_RX, str(request.rx))
    _header_set(headers, COMMON_HEADER_PADDING, AUTH_REQUEST_PADDING.generate())


def auth_response_from_headers(headers: Mapping[str, str]) -> AuthResponse:
    response = AuthResponse(
        udp_enabled=_header_get(headers, RESPONSE_HEADER_UDP_ENABLED) in _TRUE_STRINGS
    )
    rx_text = _header_get(headers, COMMON_HEADER_CC_RX)
    if rx_text == "auto":
        response.rx_auto = True
    else:
        response.rx = _parse_uint(rx_text)
    return response


def auth_response_to_headers(headers: MutableMapping[str, str], response: AuthResponse) -> None:
    _header_set(
        headers, RESPONSE_HEADER_UDP_ENABLED, "true" if response.udp_enabled else "false"
    )
    _header_set(
        headers, COMMON_HEADER_CC_RX, "auto" if response.rx_auto else str(response.rx)
    )
    _header_set(headers, COMMON_HEADER_PADDING, AUTH_RESPONSE_PADDING.generate())


def _skip_padding(stream: BinaryIO) -> None:
    padding_length = read_varint(stream)
    if padding_length > MAX_PADDING_LENGTH:
        raise ProtocolError("invalid padding length")
    if padding_length:
        read_exact(stream, padding_length)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def read_tcp_request(stream: BinaryIO) -> str:
    """Read a TCP request whose frame type has already been consumed; return the address."""
    addr_length = read_varint(stream)
    if addr_length == 0 or addr_length > MAX_ADDRESS_LENGTH:
        raise ProtocolError("invalid address length")
    address = read_exact(stream, addr_length)
    _skip_padding(stream)
    return _decode(address)


def write_tcp_request(addr: str, payload: bytes = b"") -> bytes:
    """Encode a TCP request frame for ``addr`` followed by ``payload``."""
    address = _encode(addr)
    padding = TCP_REQUEST_PADDING.generate().encode("ascii")
    return b"".join(
        (
            encode_varint(FRAME_TYPE_TCP_REQUEST),
            encode_varint(len(address)),
            address,
            encode_varint(len(padding)),
            padding,
            payload,
        )
    )


def read_tcp_response(stream: BinaryIO) -> tuple[bool, str]:
    """Read a TCP response; return whether it succeeded and the server's message."""
    status = read_exact(stream, 1)[0]
    message = read_vstring(stream)
    _skip_padding(stream)
    return status == 0, message


def write_tcp_response(ok: bool, message: str, payload: bytes = b"") -> bytes:
    """Encode a TCP response frame followed by ``payload``."""
    encoded = _encode(message)
    padding_length = len(TCP_RESPONSE_PADDING.generate())
    return b"".join(
        (
            b"\x00" if ok else b"\x01",
            encode_varint(len(encoded)),
            encoded,
            encode_varint(padding_length),
            bytes(padding_length),
            payload,
        )
    )


@dataclass
class UDPMessage:
    """A UDP datagram frame carried over QUIC datagrams."""

    session_id: int = 0
    packet_id: int = 0
    frag_id: int = 0
    frag_count: int = 0
    addr: str = ""
    data: bytes = field(default=b"")

    def header_size(self) -> int:
        addr_length = len(_encode(self.addr))
        return _UDP_HEADER.size + varint_len(addr_length) + addr_length

    def size(self) -> int:
        return self.header_size() + len(self.data)

    def serialize(self) -> bytes:
        address = _encode(self.addr)
        return b"".join(
            (
                _UDP_HEADER.pack(self.session_id, self.packet_id, self.frag_id, self.frag_count),
                encode_varint(len(address)),
                address,
                self.data,
            )
        )


def parse_udp_message(data: bytes) -> UDPMessage:
    """Decode a UDP message frame."""
    if len(data) < _UDP_HEADER.size:
        raise EOFError("UDP message header is truncated")
    session_id, packet_id, frag_id, frag_count = _UDP_HEADER.unpack_from(data)
    stream = io.BytesIO(data)
    stream.seek(_UDP_HEADER.size)
    addr_length = read_varint(stream)
    if addr_length == 0 or addr_length > MAX_MESSAGE_LENGTH:
        raise ProtocolError("invalid address length")
    rest = data[stream.tell():]
    if addr_length > len(rest):
        raise ProtocolError("address exceeds message length")
    return UDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        frag_id=frag_id,
        frag_count=frag_count,
        addr=_decode(rest[:addr_length]),
        data=rest[addr_length:],
    )


def read_vstring(stream: BinaryIO) -> str:
    """Read a varint-length-prefixed string."""
    length = read_varint(stream)
    return _decode(read_exact(stream, length))


def write_vstring(stream: BinaryIO, value: str) -> None:
    """Write a varint-length-prefixed string."""
    encoded = _encode(value)
    write_uvarint(stream, len(encoded))
    stream.write(encoded)


def write_uvarint(stream: BinaryIO, value: int) -> None:
    """Write ``value`` as a QUIC varint."""
    stream.write(encode_varint(value))