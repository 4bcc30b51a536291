"""RTP payload format for H.265 (RFC 7798), receive side only."""

from __future__ import annotations

from dpkt.rtp import RTP

from rtsp_camera.errors import DepacketizeError, MorePacketsNeeded

from .depacketizer import Depacketizer

NAL_AP = 48
NAL_FU = 49
NAL_PACI = 50

_FU_START = 0x80
_FU_END = 0x40


class H265Depacketizer(Depacketizer):
    """Turns H.265 RTP packets into access units.

    DONL fields are not expected (sprop-max-don-diff = 0).
    """

    def _extract(self, pkt: RTP) -> list[bytes]:
        payload = bytes(pkt.data)
        if len(payload) < 2:
            raise DepacketizeError("invalid H265 RTP payload (too short)")
        typ = (payload[0] >> 1) & 0x3F

        if typ == NAL_FU:
            if len(payload) < 3:
                raise DepacketizeError("invalid FU packet (too short)")
            fu_header = payload[2]
            start = bool(fu_header & _FU_START)
            end = bool(fu_header & _FU_END)
            if start:
                if end:
                    raise DepacketizeError("invalid FU packet (can't contain both a start and end bit)")
                fu_type = fu_header & 0x3F
                header = bytes([(payload[0] & 0x81) | (fu_type << 1), payload[1]])
                self._start_fragments(header + payload[3:])
                raise MorePacketsNeeded()
            self._append_fragment(payload[3:])
            if not end:
                raise MorePacketsNeeded()
            return [self._finish_fragments()]

        self._drop_pending_fragments()

        if typ == NAL_AP:
            nalus: list[bytes] = []
            body = payload[2:]
            while body:
                if len(body) < 2:
                    raise DepacketizeError("invalid aggregation packet (invalid size)")
                size = int.from_bytes(body[:2], "big")
                body = body[2:]
                if size == 0:
                    break
                if size > len(body):
                    raise DepacketizeError("invalid aggregation packet (invalid size)")
                nalus.append(body[:size])
                body = body[size:]
            if not nalus:
                raise DepacketizeError("aggregation packet doesn't contain any NALU")
            return nalus

        if typ == NAL_PACI:
            raise DepacketizeError("PACI packets are not supported")

        return [payload]


__all__ = ["H265Depacketizer"]
