import io

import pytest

from quictunnel.tuicaddr import (
    Command,
    SocksAddr,
    address_length,
    read_address,
    write_address,
)


def test_write_ipv4_wire_bytes():
    assert write_address(SocksAddr("1.2.3.4", 80)) == b"\x01\x01\x02\x03\x04\x00\x50"


def test_write_fqdn_wire_bytes():
    assert write_address(SocksAddr("example.com", 443)) == b"\x00\x0bexample.com\x01\xbb"


def test_write_empty_is_single_byte():
    assert write_address(SocksAddr()) == b"\xff"


@pytest.mark.parametrize(
    "addr",
    [
        SocksAddr("1.2.3.4", 80),
        SocksAddr("2001:db8::1", 8443),
        SocksAddr("example.com", 53),
        SocksAddr(),
    ],
)
def test_round_trip_and_length(addr):
    encoded = write_address(addr)
    assert address_length(addr) == len(encoded)
    assert read_address(io.BytesIO(encoded)) == addr


def test_read_unknown_family():
    with pytest.raises(ValueError):
        read_address(io.BytesIO(b"\x07\x00\x00"))


def test_read_truncated():
    with pytest.raises(EOFError):
        read_address(io.BytesIO(b"\x01\x01\x02"))


def test_write_fqdn_too_long():
    with pytest.raises(ValueError):
        write_address(SocksAddr("a" * 256, 80))


def test_parse_ipv6_with_port():
    addr = SocksAddr.parse("[::1]:53")
    assert addr.host == "::1"
    assert addr.port == 53
    assert not addr.is_fqdn()
    assert str(addr) == "[::1]:53"


def test_parse_fqdn():
    addr = SocksAddr.parse("example.com:80")
    assert addr.is_fqdn()
    assert addr.is_valid()
    assert str(addr) == "example.com:80"


def test_parse_without_port():
    addr = SocksAddr.parse("example.com")
    assert addr.port == 0
    assert addr.host == "example.com"


def test_mapped_ipv4_is_unmapped():
    assert SocksAddr("::ffff:1.2.3.4", 1).host == "1.2.3.4"


def test_invalid_port_rejected():
    with pytest.raises(ValueError):
        SocksAddr("1.2.3.4", 70000)


def test_empty_is_not_valid():
    assert not SocksAddr().is_valid()
    assert not SocksAddr().is_fqdn()


def test_command_decodes_wire_byte():
    assert Command(b"\x05\x02"[1]) is Command.PACKET