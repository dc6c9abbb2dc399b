"""Port-hopping addresses: one IP with a list of ports parsed from ranges."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass, field


class InvalidPortError(ValueError):
    """Raised for a port specification that is neither a port nor a range."""

    def __init__(self, port_str: str) -> None:
        super().__init__(f"{port_str} is not a valid port number or range")
        self.port_str = port_str


def _join_host_port(host: str, port: str) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


@dataclass
class UDPHopAddr:
    """An IP address and the ports to hop between."""

    ip: str
    ports: list[int] = field(default_factory=list)
    port_str: str = ""

    @property
    def network(self) -> str:
        return "udphop"

    def __str__(self) -> str:
        return _join_host_port(self.ip, self.port_str)

    def addrs(self) -> list[tuple[str, int]]:
        """Return one ``(ip, port)`` address per port."""
        return [(self.ip, port) for port in self.ports]


def _parse_port(text: str, spec: str) -> int:
    if not (text.isascii() and text.isdigit()) or int(text) > 0xFFFF:
        raise InvalidPortError(spec)
    return int(text)


def _resolve_ip(host: str) -> str:
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        pass
    infos = socket.getaddrinfo(host, None, type=socket.SOCK_DGRAM)
    addresses = [info[4][0] for info in infos]
    ipv4 = [address for address in addresses if ":" not in address]
    return (ipv4 or addresses)[0]


def resolve_udphop_addr(addr: str, port_str: str) -> UDPHopAddr:
    """Resolve ``addr`` and expand ``port_str`` such as ``"1000-1010,2000"``."""
    result = UDPHopAddr(ip=_resolve_ip(addr), port_str=port_str)
    for spec in port_str.split(","):
        if "-" in spec:
            bounds = spec.split("-")
            if len(bounds) != 2:
                raise InvalidPortError(spec)
            start, end = (_parse_port(bound, spec) for bound in bounds)
            if start > end:
                start, end = end, start
            result.ports.extend(range(start, end + 1))
        else:
            result.ports.append(_parse_port(spec, spec))
    return result