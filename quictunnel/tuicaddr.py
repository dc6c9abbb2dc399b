"""TUIC command codes and the address encoding used in its frames."""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Union

from .varint import read_exact

VERSION = 5
AUTHENTICATE_LEN = 2 + 16 + 32

FAMILY_FQDN = 0x00
FAMILY_IPV4 = 0x01
FAMILY_IPV6 = 0x02
FAMILY_EMPTY = 0xFF

_PORT = struct.Struct(">H")

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Command(IntEnum):
    AUTHENTICATE = 0
    CONNECT = 1
    PACKET = 2
    DISSOCIATE = 3
    HEARTBEAT = 4


def _parse_ip(host: str) -> IPAddress | None:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _parse_port(text: str) -> int:
    if text.isascii() and text.isdigit() and int(text) <= 0xFFFF:
        return int(text)
    return 0


@dataclass(frozen=True)
class SocksAddr:
    """A destination: an IP address or domain name plus a port. Empty host means none."""

    host: str = ""
    port: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"invalid port: {self.port}")
        ip = _parse_ip(self.host)
        if ip is not None:
            object.__setattr__(self, "host", str(ip))

    @property
    def ip(self) -> IPAddress | None:
        return _parse_ip(self.host) if self.host else None

    def is_fqdn(self) -> bool:
        return bool(self.host) and self.ip is None

    def is_valid(self) -> bool:
        return bool(self.host)

    @classmethod
    def parse(cls, text: str) -> SocksAddr:
        """Parse ``host:port`` or ``[ipv6]:port``; without a port the port is 0."""
        host, port = text, 0
        if text.startswith("["):
            end = text.find("]")
            if end < 0:
                raise ValueError(f"missing ']' in address: {text}")
            host, rest = text[1:end], text[end + 1:]
            if rest:
                if not rest.startswith(":"):
                    raise ValueError(f"unexpected text after address: {text}")
                port = _parse_port(rest[1:])
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
            port = _parse_port(port_text)
        return cls(host, port)

    def __str__(self) -> str:
        if isinstance(self.ip, ipaddress.IPv6Address):
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def address_length(addr: SocksAddr) -> int:
    """Return the encoded size of ``addr`` including its port."""
    if not addr.is_valid():
        return 1
    ip = addr.ip
    if ip is None:
        return 1 + 1 + len(addr.host.encode("utf-8")) + _PORT.size
    return 1 + len(ip.packed) + _PORT.size


def write_address(addr: SocksAddr) -> bytes:
    """Encode ``addr``: family byte, address, then port (omitted for no address)."""
    if not addr.is_valid():
        return bytes([FAMILY_EMPTY])
    ip = addr.ip
    if ip is None:
        name = addr.host.encode("utf-8")
        if len(name) > 255:
            raise ValueError("fqdn too long")
        body = bytes([FAMILY_FQDN, len(name)]) + name
    elif ip.version == 4:
        body = bytes([FAMILY_IPV4]) + ip.packed
    else:
        body = bytes([FAMILY_IPV6]) + ip.packed
    return body + _PORT.pack(addr.port)


def read_address(stream: BinaryIO) -> SocksAddr:
    """Decode one address written by :func:`write_address`."""
    family = read_exact(stream, 1)[0]
    if family == FAMILY_EMPTY:
        return SocksAddr()
    if family == FAMILY_FQDN:
        length = read_exact(stream, 1)[0]
        host = read_exact(stream, length).decode("utf-8", "surrogateescape")
    elif family == FAMILY_IPV4:
        host = str(ipaddress.IPv4Address(read_exact(stream, 4)))
    elif family == FAMILY_IPV6:
        host = str(ipaddress.IPv6Address(read_exact(stream, 16)))
    else:
        raise ValueError(f"unknown address family: {family}")
    (port,) = _PORT.unpack(read_exact(stream, _PORT.size))
    return SocksAddr(host, port)