"""Protocol codecs, obfuscation, congestion control, port hopping and UDP sessions for QUIC proxy tunnels."""

__version__ = "0.1.0"

__all__ = [
    "brutal",
    "datagram",
    "hopaddr",
    "hopconn",
    "hy2_udp",
    "hy2proto",
    "hy_udp",
    "hyproto",
    "obfs",
    "tuic_udp",
    "tuicaddr",
    "varint",
]