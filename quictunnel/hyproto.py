"""Hysteria (v1) control-stream protocol: hellos, requests and responses."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .varint import read_exact

MBPS_TO_BPS = 125000
MIN_SPEED_BPS = 16384
DEFAULT_ALPN = "hysteria"
DEFAULT_STREAM_RECEIVE_WINDOW = 8388608
DEFAULT_CONN_RECEIVE_WINDOW = DEFAULT_STREAM_RECEIVE_WINDOW * 5 // 2
DEFAULT_MAX_IDLE_TIMEOUT = 30.0
DEFAULT_KEEP_ALIVE_PERIOD = 10.0

PROTOCOL_VERSION = 3
PROTOCOL_TIMEOUT = 10.0
ERROR_CODE_GENERIC = 0
ERROR_CODE_PROTOCOL_ERROR = 1
ERROR_CODE_AUTH_ERROR = 2

_HELLO_RATES = struct.Struct(">QQ")
_SERVER_HELLO = struct.Struct(">BQQH")
_SERVER_RESPONSE = struct.Struct(">BIH")
_UINT16 = struct.Struct(">H")


class ProtocolError(ValueError):
    """Raised when a peer sends a malformed or unsupported frame."""


@dataclass
class ClientHello:
    send_bps: int = 0
    recv_bps: int = 0
    auth: str = ""


@dataclass
class ServerHello:
    ok: bool = False
    send_bps: int = 0
    recv_bps: int = 0
    message: str = ""


@dataclass
class ClientRequest:
    udp: bool = False
    host: str = ""
    port: int = 0


@dataclass
class ServerResponse:
    ok: bool = False
    udp_session_id: int = 0
    message: str = ""


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _read_string(stream: BinaryIO, length: int) -> str:
    return _decode(read_exact(stream, length)) if length else ""


def write_client_hello(stream: BinaryIO, hello: ClientHello) -> None:
    """Write the client hello to the control stream."""
    auth = _encode(hello.auth)
    stream.write(
        bytes([PROTOCOL_VERSION])
        + _HELLO_RATES.pack(hello.send_bps, hello.recv_bps)
        + _UINT16.pack(len(auth))
        + auth
    )


def read_client_hello(stream: BinaryIO) -> ClientHello:
    """Read and validate a client hello."""
    version = read_exact(stream, 1)[0]
    if version != PROTOCOL_VERSION:
        raise ProtocolError(f"unsupported client version: {version}")
    send_bps, recv_bps = _HELLO_RATES.unpack(read_exact(stream, _HELLO_RATES.size))
    if send_bps == 0 or recv_bps == 0:
        raise ProtocolError("invalid rate from client")
    (auth_length,) = _UINT16.unpack(read_exact(stream, _UINT16.size))
    return ClientHello(send_bps, recv_bps, _read_string(stream, auth_length))


def write_server_hello(stream: BinaryIO, hello: ServerHello) -> None:
    """Write the server hello to the control stream."""
    message = _encode(hello.message)
    stream.write(
        _SERVER_HELLO.pack(1 if hello.ok else 0, hello.send_bps, hello.recv_bps, len(message))
        + message
    )


def read_server_hello(stream: BinaryIO) -> ServerHello:
    """Read a server hello."""
    status, send_bps, recv_bps, message_length = _SERVER_HELLO.unpack(
        read_exact(stream, _SERVER_HELLO.size)
    )
    return ServerHello(
        ok=status == 1,
        send_bps=send_bps,
        recv_bps=recv_bps,
        message=_read_string(stream, message_length),
    )


def encode_client_request(request: ClientRequest, payload: bytes = b"") -> bytes:
    """Encode a stream request followed by ``payload``."""
    host = _encode(request.host)
    return b"".join(
        (
            b"\x01" if request.udp else b"\x00",
            _UINT16.pack(len(host)),
            host,
            _UINT16.pack(request.port),
            payload,
        )
    )


def read_client_request(stream: BinaryIO) -> ClientRequest:
    """Read a stream request."""
    udp = read_exact(stream, 1)[0] != 0
    (host_length,) = _UINT16.unpack(read_exact(stream, _UINT16.size))
    host = _read_string(stream, host_length)
    (port,) = _UINT16.unpack(read_exact(stream, _UINT16.size))
    return ClientRequest(udp=udp, host=host, port=port)


def write_server_response(stream: BinaryIO, response: ServerResponse) -> None:
    """Write the server's answer to a stream request."""
    message = _encode(response.message)
    stream.write(
        _SERVER_RESPONSE.pack(1 if response.ok else 0, response.udp_session_id, len(message))
        + message
    )


def read_server_response(stream: BinaryIO) -> ServerResponse:
    """Read the server's answer to a stream request."""
    status, session_id, message_length = _SERVER_RESPONSE.unpack(
        read_exact(stream, _SERVER_RESPONSE.size)
    )
    return ServerResponse(
        ok=status == 1,
        udp_session_id=session_id,
        message=_read_string(stream, message_length),
    )