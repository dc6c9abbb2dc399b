import pytest

from quictunnel.datagram import Defragger, MessageTooLargeError, UDPPacketConn, fragment_message
from quictunnel.hy_udp import HysteriaUDPMessage, decode_udp_message
from quictunnel.hyproto import ProtocolError
from quictunnel.tuicaddr import SocksAddr


def build(session_id, packet_id, data, destination):
    return HysteriaUDPMessage(
        session_id=session_id,
        packet_id=packet_id,
        host=destination.host,
        port=destination.port,
        data=data,
    )


def test_pack_wire_layout():
    message = HysteriaUDPMessage(
        session_id=1, packet_id=2, fragment_id=0, fragment_total=1, host="a", port=80, data=b"xy"
    )
    assert message.pack() == (
        b"\x00\x00\x00\x01" + b"\x00\x01a" + b"\x00\x50" + b"\x00\x02" + b"\x00\x01" + b"\x00\x02xy"
    )


def test_header_size_matches_packed_header():
    message = HysteriaUDPMessage(session_id=7, host="example.com", port=443, data=b"payload")
    assert len(message.pack()) - len(message.data) == message.header_size()
    assert message.header_size() == 14 + len("example.com")


def test_round_trip():
    message = HysteriaUDPMessage(
        session_id=0xDEADBEEF,
        packet_id=65535,
        fragment_id=3,
        fragment_total=5,
        host="example.com",
        port=53,
        data=b"\x00\x01\x02",
    )
    assert decode_udp_message(message.pack()) == message


def test_destination_property():
    message = HysteriaUDPMessage(host="example.com", port=8080)
    assert message.destination == SocksAddr("example.com", 8080)
    assert message.destination.is_fqdn()


def test_invalid_data_length():
    raw = HysteriaUDPMessage(host="a", port=1, data=b"abc").pack()
    with pytest.raises(ProtocolError):
        decode_udp_message(raw + b"extra")
    with pytest.raises(ProtocolError):
        decode_udp_message(raw[:-1])


def test_truncated_header():
    raw = HysteriaUDPMessage(host="example.com", port=1, data=b"abc").pack()
    with pytest.raises(EOFError):
        decode_udp_message(raw[:5])


def test_fragment_and_reassemble():
    message = HysteriaUDPMessage(session_id=9, packet_id=4, host="example.com", port=53, data=bytes(range(200)) * 3)
    fragments = fragment_message(message, 100)
    assert len(fragments) > 1
    assert all(len(fragment.pack()) <= 100 for fragment in fragments)
    defragger = Defragger()
    results = [defragger.feed(decode_udp_message(fragment.pack())) for fragment in fragments]
    assert all(result is None for result in results[:-1])
    assert results[-1].data == message.data
    assert results[-1].destination == message.destination


def test_session_write_falls_back_to_fragments():
    sent = []

    def send(datagram):
        if len(datagram) > 100:
            raise MessageTooLargeError(100)
        sent.append(datagram)

    conn = UDPPacketConn(send, build, session_id=3)
    payload = b"q" * 250
    assert conn.write_packet(payload, SocksAddr("example.com", 53)) == len(payload)
    assert len(sent) > 1
    defragger = Defragger()
    whole = [defragger.feed(decode_udp_message(datagram)) for datagram in sent][-1]
    assert whole.data == payload
    assert whole.session_id == 3


def test_session_receives_decoded_message():
    conn = UDPPacketConn(lambda datagram: None, build)
    raw = HysteriaUDPMessage(session_id=0, host="example.com", port=53, data=b"answer").pack()
    conn.input_packet(decode_udp_message(raw))
    assert conn.read_packet(timeout=1) == (b"answer", SocksAddr("example.com", 53))