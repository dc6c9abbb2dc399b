"""QUIC variable-length integer encoding and exact reads from binary streams."""

from __future__ import annotations

from typing import BinaryIO

MAX_VARINT_1 = 63
MAX_VARINT_2 = 16383
MAX_VARINT_4 = 1073741823
MAX_VARINT_8 = 4611686018427387903

_PREFIX_BY_LENGTH = {1: 0x00, 2: 0x40, 4: 0x80, 8: 0xC0}


def varint_len(value: int) -> int:
    """Return the number of bytes needed to encode ``value`` as a QUIC varint."""
    if value < 0:
        raise ValueError(f"{value} is negative and cannot be encoded as a varint")
    if value <= MAX_VARINT_1:
        return 1
    if value <= MAX_VARINT_2:
        return 2
    if value <= MAX_VARINT_4:
        return 4
    if value <= MAX_VARINT_8:
        return 8
    raise ValueError(f"{value:#x} doesn't fit into 62 bits")


def encode_varint(value: int) -> bytes:
    """Encode ``value`` as a QUIC varint."""
    length = varint_len(value)
    encoded = bytearray(value.to_bytes(length, "big"))
    encoded[0] |= _PREFIX_BY_LENGTH[length]
    return bytes(encoded)


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes from ``stream`` or raise EOFError."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise EOFError(f"expected {size} bytes, got {size - remaining}")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_varint(stream: BinaryIO) -> int:
    """Read one QUIC varint from ``stream``."""
    first = read_exact(stream, 1)[0]
    length = 1 << (first >> 6)
    value = first & 0x3F
    if length > 1:
        rest = read_exact(stream, length - 1)
        value = (value << (8 * (length - 1))) | int.from_bytes(rest, "big")
    return value