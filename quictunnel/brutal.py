"""Brutal congestion control: a fixed-rate sender paced by a token bucket.

Times are float seconds on any monotonic scale; sizes are byte counts.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sized
from dataclasses import dataclass
from typing import Protocol

INIT_MAX_DATAGRAM_SIZE = 1252

PKT_INFO_SLOT_COUNT = 5
MIN_SAMPLE_COUNT = 50
MIN_ACK_RATE = 0.8
CONGESTION_WINDOW_MULTIPLIER = 2
DEBUG_PRINT_INTERVAL = 2

MAX_BURST_PACKETS = 10
MIN_PACING_DELAY = 0.001

_NANOSECONDS = 1_000_000_000
_MIN_PACING_DELAY_NS = 1_000_000
_BUDGET_CEILING = (1 << 62) - 1
_DEFAULT_CONGESTION_WINDOW = 10240


class RTTStatsProvider(Protocol):
    def smoothed_rtt(self) -> float: ...


def _truncating_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


class Pacer:
    """Token bucket pacing: the budget refills at the current bandwidth up to a burst cap."""

    def __init__(self, get_bandwidth: Callable[[], int]) -> None:
        self.get_bandwidth = get_bandwidth
        self.budget_at_last_sent = MAX_BURST_PACKETS * INIT_MAX_DATAGRAM_SIZE
        self.max_datagram_size = INIT_MAX_DATAGRAM_SIZE
        self.last_sent_time: float | None = None

    def sent_packet(self, send_time: float, size: int) -> None:
        budget = self.budget(send_time)
        self.budget_at_last_sent = 0 if size > budget else budget - size
        self.last_sent_time = send_time

    def budget(self, now: float) -> int:
        if self.last_sent_time is None:
            return self._max_burst_size()
        elapsed_ns = round((now - self.last_sent_time) * _NANOSECONDS)
        budget = self.budget_at_last_sent + _truncating_div(
            self.get_bandwidth() * elapsed_ns, _NANOSECONDS
        )
        if budget < 0:
            budget = _BUDGET_CEILING
        return min(self._max_burst_size(), budget)

    def _max_burst_size(self) -> int:
        return max(
            _truncating_div(
                (_MIN_PACING_DELAY_NS + 1_000_000) * self.get_bandwidth(), _NANOSECONDS
            ),
            MAX_BURST_PACKETS * self.max_datagram_size,
        )

    def time_until_send(self) -> float | None:
        """Return when the next packet may go out, or None if it may go out now."""
        if self.budget_at_last_sent >= self.max_datagram_size:
            return None
        bandwidth = self.get_bandwidth()
        if bandwidth <= 0:
            return math.inf
        delay_ns = math.ceil(
            (self.max_datagram_size - self.budget_at_last_sent) * _NANOSECONDS / bandwidth
        )
        start = self.last_sent_time if self.last_sent_time is not None else 0.0
        return start + max(MIN_PACING_DELAY, delay_ns / _NANOSECONDS)

    def set_max_datagram_size(self, size: int) -> None:
        self.max_datagram_size = size


@dataclass
class _PacketInfo:
    timestamp: int = 0
    ack_count: int = 0
    loss_count: int = 0


class BrutalSender:
    """Sends at a fixed rate, inflating it by the observed loss to keep goodput."""

    def __init__(
        self, bps: int, debug: bool = False, logger: logging.Logger | None = None
    ) -> None:
        self.bps = bps
        self.max_datagram_size = INIT_MAX_DATAGRAM_SIZE
        self.ack_rate = 1.0
        self.debug = debug
        self.logger = logger or logging.getLogger(__name__)
        self.rtt_stats: RTTStatsProvider | None = None
        self.pkt_info_slots = [_PacketInfo() for _ in range(PKT_INFO_SLOT_COUNT)]
        self.last_ack_print_timestamp = 0
        self.pacer = Pacer(lambda: int(self.bps / self.ack_rate))

    def set_rtt_stats_provider(self, rtt_stats: RTTStatsProvider) -> None:
        self.rtt_stats = rtt_stats

    def _smoothed_rtt(self) -> float:
        return self.rtt_stats.smoothed_rtt() if self.rtt_stats is not None else 0.0

    def time_until_send(self, bytes_in_flight: int) -> float | None:
        return self.pacer.time_until_send()

    def has_pacing_budget(self, now: float) -> bool:
        return self.pacer.budget(now) >= self.max_datagram_size

    def can_send(self, bytes_in_flight: int) -> bool:
        return bytes_in_flight < self.get_congestion_window()

    def get_congestion_window(self) -> int:
        rtt = self._smoothed_rtt()
        if rtt <= 0:
            return _DEFAULT_CONGESTION_WINDOW
        return int(self.bps * rtt * CONGESTION_WINDOW_MULTIPLIER / self.ack_rate)

    def on_packet_sent(
        self,
        sent_time: float,
        bytes_in_flight: int,
        packet_number: int,
        size: int,
        is_retransmittable: bool,
    ) -> None:
        self.pacer.sent_packet(sent_time, size)

    def on_congestion_event_ex(
        self,
        prior_in_flight: int,
        event_time: float,
        acked_packets: Sized,
        lost_packets: Sized,
    ) -> None:
        timestamp = math.floor(event_time)
        slot = self.pkt_info_slots[timestamp % PKT_INFO_SLOT_COUNT]
        if slot.timestamp == timestamp:
            slot.loss_count += len(lost_packets)
            slot.ack_count += len(acked_packets)
        else:
            slot.timestamp = timestamp
            slot.ack_count = len(acked_packets)
            slot.loss_count = len(lost_packets)
        self._update_ack_rate(timestamp)

    def set_max_datagram_size(self, size: int) -> None:
        self.max_datagram_size = size
        self.pacer.set_max_datagram_size(size)
        if self.debug:
            self._debug_print("SetMaxDatagramSize: %d", size)

    def _update_ack_rate(self, timestamp: int) -> None:
        min_timestamp = timestamp - PKT_INFO_SLOT_COUNT
        recent = [info for info in self.pkt_info_slots if info.timestamp >= min_timestamp]
        ack_count = sum(info.ack_count for info in recent)
        loss_count = sum(info.loss_count for info in recent)
        total = ack_count + loss_count
        rtt_ms = int(self._smoothed_rtt() * 1000)
        if total < MIN_SAMPLE_COUNT:
            self.ack_rate = 1.0
            if self._claim_print(timestamp):
                self._debug_print(
                    "Not enough samples (total=%d, ack=%d, loss=%d, rtt=%d)",
                    total, ack_count, loss_count, rtt_ms,
                )
            return
        rate = ack_count / total
        if rate < MIN_ACK_RATE:
            self.ack_rate = MIN_ACK_RATE
            if self._claim_print(timestamp):
                self._debug_print(
                    "ACK rate too low: %.2f, clamped to %.2f (total=%d, ack=%d, loss=%d, rtt=%d)",
                    rate, MIN_ACK_RATE, total, ack_count, loss_count, rtt_ms,
                )
            return
        self.ack_rate = rate
        if self._claim_print(timestamp):
            self._debug_print(
                "ACK rate: %.2f (total=%d, ack=%d, loss=%d, rtt=%d)",
                rate, total, ack_count, loss_count, rtt_ms,
            )

    def in_slow_start(self) -> bool:
        return False

    def in_recovery(self) -> bool:
        return False

    def _claim_print(self, timestamp: int) -> bool:
        if self.debug and timestamp - self.last_ack_print_timestamp >= DEBUG_PRINT_INTERVAL:
            self.last_ack_print_timestamp = timestamp
            return True
        return False

    def _debug_print(self, fmt: str, *args: object) -> None:
        self.logger.debug("[brutal] %s", fmt % args)