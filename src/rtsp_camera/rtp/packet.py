"""RTP packet parsing/building on top of :mod:`dpkt` plus timestamp helpers."""

from __future__ import annotations

from typing import Optional

from dpkt.rtp import RTP

from rtsp_camera.errors import DepacketizeError

RTP_VERSION = 2
TIMESTAMP_MODULO = 1 << 32
SEQUENCE_MODULO = 1 << 16


def parse_rtp(buf: bytes) -> RTP:
    """Parse one RTP packet, stripping header extension and padding.

    dpkt leaves both in ``data``; downstream depacketizers expect the bare
    payload.
    """
    if len(buf) < 12:
        raise DepacketizeError(f"RTP packet too short ({len(buf)} bytes)")
    try:
        pkt = RTP(buf)
    except Exception as exc:  # dpkt raises its own NeedData/UnpackError family
        raise DepacketizeError(f"invalid RTP packet: {exc}") from exc
    if pkt.version != RTP_VERSION:
        raise DepacketizeError(f"unsupported RTP version {pkt.version}")
    payload = bytes(pkt.data)
    if pkt.x:
        if len(payload) < 4:
            raise DepacketizeError("truncated RTP header extension")
        ext_words = int.from_bytes(payload[2:4], "big")
        ext_len = 4 + 4 * ext_words
        if len(payload) < ext_len:
            raise DepacketizeError("truncated RTP header extension")
        payload = payload[ext_len:]
        pkt.x = 0
    if pkt.p:
        if not payload:
            raise DepacketizeError("RTP padding flag set on empty payload")
        pad = payload[-1]
        if pad == 0 or pad > len(payload):
            raise DepacketizeError(f"invalid RTP padding length {pad}")
        payload = payload[:-pad]
        pkt.p = 0
    pkt.data = payload
    return pkt


def build_rtp(
    payload: bytes,
    *,
    payload_type: int,
    sequence_number: int,
    timestamp: int,
    ssrc: int,
    marker: bool = False,
) -> RTP:
    pkt = RTP(
        seq=sequence_number % SEQUENCE_MODULO,
        ts=timestamp % TIMESTAMP_MODULO,
        ssrc=ssrc,
        data=payload,
    )
    pkt.version = RTP_VERSION
    pkt.pt = payload_type
    pkt.m = 1 if marker else 0
    return pkt


class TimestampDecoder:
    """Turns 32-bit RTP timestamps into monotonic seconds since the first packet.

    Differences are interpreted as signed 32-bit values so wraparound and small
    reorderings are handled.
    """

    def __init__(self, clock_rate: int) -> None:
        if clock_rate <= 0:
            raise ValueError("clock rate must be positive")
        self.clock_rate = int(clock_rate)
        self._last_ts: Optional[int] = None
        self._ticks = 0

    def decode(self, ts: int) -> float:
        ts = int(ts) % TIMESTAMP_MODULO
        if self._last_ts is None:
            self._last_ts = ts
            return 0.0
        diff = (ts - self._last_ts) % TIMESTAMP_MODULO
        if diff >= TIMESTAMP_MODULO // 2:
            diff -= TIMESTAMP_MODULO
        self._ticks += diff
        self._last_ts = ts
        return self._ticks / self.clock_rate


class SequenceTracker:
    """Counts packets missing from an RTP sequence-number stream."""

    def __init__(self) -> None:
        self._expected: Optional[int] = None

    def lost_before(self, seq: int) -> int:
        seq = int(seq) % SEQUENCE_MODULO
        expected = self._expected
        self._expected = (seq + 1) % SEQUENCE_MODULO
        if expected is None:
            return 0
        gap = (seq - expected) % SEQUENCE_MODULO
        # A large forward gap is a late/duplicate packet, not a loss burst
        if gap >= SEQUENCE_MODULO // 2:
            self._expected = expected
            return 0
        return gap


__all__ = [
    "RTP",
    "SequenceTracker",
    "TimestampDecoder",
    "build_rtp",
    "parse_rtp",
]
