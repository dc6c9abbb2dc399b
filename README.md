# quictunnel

Building blocks for QUIC-based proxy tunnels that speak the Hysteria, Hysteria2 and
TUIC protocols. It has no dependencies outside the standard library.

## Modules

- `quictunnel.varint`: QUIC variable-length integers (`varint_len`, `encode_varint`,
  `read_varint`) and `read_exact`, which reads an exact number of bytes from a binary
  stream or raises `EOFError`.
- `quictunnel.hy2proto`: the Hysteria2 protocol. It covers TCP request and response frames
  (`write_tcp_request`, `read_tcp_request`, `write_tcp_response`, `read_tcp_response`),
  UDP messages (`UDPMessage`, `parse_udp_message`), varint-prefixed strings
  (`read_vstring`, `write_vstring`, `write_uvarint`) and the authentication headers
  (`AuthRequest`, `AuthResponse`, `auth_request_to_headers`, `auth_request_from_headers`,
  `auth_response_to_headers`, `auth_response_from_headers`). Random padding comes from
  `Padding`. A malformed frame raises `ProtocolError`.
- `quictunnel.hyproto`: the Hysteria (v1) control stream. It covers `ClientHello`,
  `ServerHello`, `ClientRequest` and `ServerResponse` with their `write_*`/`read_*`
  functions, and `encode_client_request` for a request followed by its payload.
- `quictunnel.obfs`: packet obfuscation. `XPlusObfuscator` uses SHA-256 with a 16-byte
  salt. `SalamanderObfuscator` uses BLAKE2b-256 with an 8-byte salt. `ObfuscatedPacketConn`
  wraps any object with `read_from(size)`, `write_to(data, addr)` and `close()`. Build one
  with `new_xplus_conn` or `new_salamander_conn`.
- `quictunnel.brutal`: the Brutal congestion controller `BrutalSender` and its
  token-bucket `Pacer`. Times are float seconds and sizes are byte counts.
- `quictunnel.tuicaddr`: TUIC `Command` codes, `SocksAddr` and the address encoding
  (`write_address`, `read_address`, `address_length`).
- `quictunnel.hopaddr`: `resolve_udphop_addr` turns a host and a port specification such
  as `"1000-1010,2000"` into a `UDPHopAddr`. A bad specification raises `InvalidPortError`.
- `quictunnel.hopconn`: `UDPHopPacketConn` sends to a random server port and moves to a
  fresh local socket every interval. While it does so it keeps reading from the previous
  socket. Open one with `new_udphop_packet_conn`. An interval of 0 selects 30 seconds, and
  any other interval must be at least 5 seconds.
- `quictunnel.datagram`: a UDP session over QUIC datagrams. It provides `fragment_message`
  and the `Defragger` for reassembly, and `UDPPacketConn`, which queues received packets and
  fragments outgoing ones after a `MessageTooLargeError`.
- `quictunnel.hy_udp`, `quictunnel.hy2_udp` and `quictunnel.tuic_udp`: the UDP message
  layouts of each protocol (`HysteriaUDPMessage`, `Hysteria2UDPMessage`, `TUICUDPMessage`),
  each with its `decode_udp_message`. `tuic_udp` adds `read_udp_message` for streams,
  `fragment_tuic_message` and `encode_dissociate`.

## Installing

```
pip install .
```

## Examples

Encode and decode a Hysteria2 TCP request:

```python
import io
from quictunnel.hy2proto import write_tcp_request, read_tcp_request

frame = write_tcp_request("example.com:443", b"")
stream = io.BytesIO(frame)
stream.read(2)                      # the 0x401 frame type, which the HTTP/3 layer consumes
assert read_tcp_request(stream) == "example.com:443"
```

Obfuscate packets with Salamander:

```python
from quictunnel.obfs import SalamanderObfuscator

password = b"password"
obfs = SalamanderObfuscator(password)
packet = obfs.obfuscate(b"hello")
assert obfs.deobfuscate(packet) == b"hello"
```

Expand a port-hopping specification:

```python
from quictunnel.hopaddr import resolve_udphop_addr

addr = resolve_udphop_addr("127.0.0.1", "1000-1002,2000")
assert addr.ports == [1000, 1001, 1002, 2000]
```

Run a Hysteria2 UDP session over any datagram sender:

```python
from quictunnel.datagram import UDPPacketConn
from quictunnel.hy2_udp import Hysteria2UDPMessage, decode_udp_message

sent = []
session = UDPPacketConn(
    sent.append,
    lambda sid, pid, data, dest: Hysteria2UDPMessage(
        session_id=sid, packet_id=pid, address=dest, data=data
    ),
    session_id=7,
)
session.write_packet(b"ping", "example.com:53")
message = decode_udp_message(sent[0])
session.input_packet(message)
data, source = session.read_packet(timeout=1)
assert data == b"ping" and str(source) == "example.com:53"
```

## What it does not do

The package has no QUIC or TLS stack. It has no Hysteria, Hysteria2 or TUIC client or
server that dials, listens, authenticates or relays, and it provides no command-line
program. To build a working tunnel, supply a QUIC implementation and connect its streams
and datagrams to the codecs, obfuscators, congestion controller and UDP sessions above.

## Running the tests

```
pip install .[test]
pytest
```