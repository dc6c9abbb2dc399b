import pytest

from quictunnel.hopaddr import InvalidPortError, UDPHopAddr, resolve_udphop_addr


def test_ranges_and_single_ports():
    addr = resolve_udphop_addr("1.2.3.4", "1000-1002,2000")
    assert addr.ports == [1000, 1001, 1002, 2000]
    assert addr.ip == "1.2.3.4"
    assert addr.port_str == "1000-1002,2000"


def test_reversed_range_is_swapped():
    assert resolve_udphop_addr("1.2.3.4", "5-3").ports == [3, 4, 5]


@pytest.mark.parametrize("spec", ["70000", "1-2-3", "abc", "", "-5", "1-x", "+80"])
def test_invalid_port_specs(spec):
    with pytest.raises(InvalidPortError) as info:
        resolve_udphop_addr("1.2.3.4", spec)
    assert "is not a valid port number or range" in str(info.value)


def test_error_names_offending_part():
    with pytest.raises(InvalidPortError) as info:
        resolve_udphop_addr("1.2.3.4", "80,bad")
    assert info.value.port_str == "bad"


def test_string_form_ipv4():
    assert str(resolve_udphop_addr("1.2.3.4", "1000-1002")) == "1.2.3.4:1000-1002"


def test_string_form_ipv6():
    assert str(resolve_udphop_addr("::1", "80")) == "[::1]:80"


def test_addrs_one_per_port():
    addr = resolve_udphop_addr("1.2.3.4", "10-12")
    assert addr.addrs() == [("1.2.3.4", port) for port in addr.ports]


def test_network_name():
    assert UDPHopAddr("1.2.3.4", [1], "1").network == "udphop"