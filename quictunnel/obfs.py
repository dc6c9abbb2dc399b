"""Packet obfuscation layers: XPlus (SHA-256) and Salamander (BLAKE2b)."""

from __future__ import annotations

import hashlib
import os
from typing import Any, Protocol


class PacketConn(Protocol):
    def read_from(self, size: int) -> tuple[bytes, Any]: ...

    def write_to(self, data: bytes, addr: Any) -> int: ...

    def close(self) -> None: ...


def _xor(data: bytes, key: bytes) -> bytes:
    key_length = len(key)
    return bytes(byte ^ key[index % key_length] for index, byte in enumerate(data))


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


class XPlusObfuscator:
    """XOR with SHA-256(key || 16-byte salt), salt prepended to each packet."""

    salt_length = 16
    counts_salt = True

    def __init__(self, key: bytes | str) -> None:
        self.key = _as_bytes(key)

    def _digest(self, salt: bytes) -> bytes:
        return hashlib.sha256(self.key + salt).digest()

    def obfuscate(self, data: bytes) -> bytes:
        salt = os.urandom(self.salt_length)
        return salt + _xor(data, self._digest(salt))

    def deobfuscate(self, packet: bytes) -> bytes:
        """Recover the payload; packets shorter than the salt yield nothing."""
        if len(packet) < self.salt_length:
            return b""
        salt = packet[: self.salt_length]
        return _xor(packet[self.salt_length :], self._digest(salt))


class SalamanderObfuscator:
    """XOR with BLAKE2b-256(password || 8-byte salt), salt prepended to each packet."""

    salt_length = 8
    counts_salt = False

    def __init__(self, password: bytes | str) -> None:
        self.password = _as_bytes(password)

    def _digest(self, salt: bytes) -> bytes:
        return hashlib.blake2b(self.password + salt, digest_size=32).digest()

    def obfuscate(self, data: bytes) -> bytes:
        salt = os.urandom(self.salt_length)
        return salt + _xor(data, self._digest(salt))

    def deobfuscate(self, packet: bytes) -> bytes:
        """Recover the payload; packets no longer than the salt pass through unchanged."""
        if len(packet) <= self.salt_length:
            return packet
        salt = packet[: self.salt_length]
        return _xor(packet[self.salt_length :], self._digest(salt))


class ObfuscatedPacketConn:
    """A packet connection that obfuscates every datagram it carries."""

    def __init__(self, conn: PacketConn, obfuscator: XPlusObfuscator | SalamanderObfuscator) -> None:
        self.upstream = conn
        self.obfuscator = obfuscator

    def read_from(self, size: int) -> tuple[bytes, Any]:
        packet, addr = self.upstream.read_from(size)
        return self.obfuscator.deobfuscate(packet), addr

    def write_to(self, data: bytes, addr: Any) -> int:
        written = self.upstream.write_to(self.obfuscator.obfuscate(data), addr)
        return written if self.obfuscator.counts_salt else len(data)

    def close(self) -> None:
        self.upstream.close()

    def __enter__(self) -> ObfuscatedPacketConn:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def new_xplus_conn(conn: PacketConn, key: bytes | str) -> ObfuscatedPacketConn:
    return ObfuscatedPacketConn(conn, XPlusObfuscator(key))


def new_salamander_conn(conn: PacketConn, password: bytes | str) -> ObfuscatedPacketConn:
    return ObfuscatedPacketConn(conn, SalamanderObfuscator(password))