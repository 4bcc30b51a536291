"""RTP payload format for H.264 (RFC 6184, packetization-mode 1)."""

from __future__ import annotations

import random
from typing import Optional, Sequence

from dpkt.rtp import RTP

from rtsp_camera.errors import DepacketizeError, MorePacketsNeeded, PacketizeError

from .depacketizer import Depacketizer
from .packet import SEQUENCE_MODULO, build_rtp

NAL_STAP_A = 24
NAL_STAP_B = 25
NAL_MTAP16 = 26
NAL_MTAP24 = 27
NAL_FU_A = 28
NAL_FU_B = 29

_FU_START = 0x80
_FU_END = 0x40


class H264Depacketizer(Depacketizer):
    """Turns H.264 RTP packets into access units."""

    def _extract(self, pkt: RTP) -> list[bytes]:
        payload = bytes(pkt.data)
        if not payload:
            raise DepacketizeError("empty H264 RTP payload")
        typ = payload[0] & 0x1F

        if typ == NAL_FU_A:
            if len(payload) < 2:
                raise DepacketizeError("invalid FU-A packet (too short)")
            fu_header = payload[1]
            start = bool(fu_header & _FU_START)
            end = bool(fu_header & _FU_END)
            if start:
                if end:
                    raise DepacketizeError("invalid FU-A packet (can't contain both a start and end bit)")
                header = (payload[0] & 0xE0) | (fu_header & 0x1F)
                self._start_fragments(bytes([header]) + payload[2:])
                raise MorePacketsNeeded()
            self._append_fragment(payload[2:])
            if not end:
                raise MorePacketsNeeded()
            return [self._finish_fragments()]

        self._drop_pending_fragments()

        if typ == NAL_STAP_A:
            nalus: list[bytes] = []
            body = payload[1:]
            while body:
                if len(body) < 2:
                    raise DepacketizeError("invalid STAP-A packet (invalid size)")
                size = int.from_bytes(body[:2], "big")
                body = body[2:]
                # some cameras pad STAP-A with a zero-length tail
                if size == 0:
                    break
                if size > len(body):
                    raise DepacketizeError("invalid STAP-A packet (invalid size)")
                nalus.append(body[:size])
                body = body[size:]
            if not nalus:
                raise DepacketizeError("STAP-A packet doesn't contain any NALU")
            return nalus

        if typ in (NAL_STAP_B, NAL_MTAP16, NAL_MTAP24, NAL_FU_B) or typ == 0 or typ >= 30:
            raise DepacketizeError(f"packet type not supported ({typ})")

        return [payload]


class H264Packetizer:
    """Packs NAL units into RTP packets no larger than ``payload_max_size``.

    Small consecutive NAL units are aggregated into STAP-A packets, units that
    do not fit are split into FU-A fragments. The marker bit is set on the last
    packet of every access unit. Packet timestamps carry only
    ``initial_timestamp``; callers add the media time.
    """

    def __init__(
        self,
        payload_max_size: int = 1188,
        payload_type: int = 96,
        ssrc: Optional[int] = None,
        initial_sequence_number: Optional[int] = None,
        initial_timestamp: int = 0,
    ) -> None:
        if payload_max_size < 3:
            raise PacketizeError("payload_max_size too small")
        self.payload_max_size = int(payload_max_size)
        self.payload_type = int(payload_type)
        self.ssrc = random.randrange(1 << 32) if ssrc is None else int(ssrc)
        self.sequence_number = (
            random.randrange(SEQUENCE_MODULO) if initial_sequence_number is None else int(initial_sequence_number)
        )
        self.initial_timestamp = int(initial_timestamp)

    def packetize(self, nalus: Sequence[bytes]) -> list[RTP]:
        payloads: list[bytes] = []
        batch: list[bytes] = []
        batch_size = 1

        for nalu in nalus:
            if not nalu:
                raise PacketizeError("cannot packetize an empty NAL unit")
            if batch and batch_size + 2 + len(nalu) <= self.payload_max_size:
                batch.append(nalu)
                batch_size += 2 + len(nalu)
                continue
            payloads.extend(self._flush(batch))
            batch = []
            batch_size = 1
            if len(nalu) <= self.payload_max_size:
                batch = [nalu]
                batch_size = 1 + 2 + len(nalu)
            else:
                payloads.extend(self._fragment(nalu))
        payloads.extend(self._flush(batch))

        packets: list[RTP] = []
        for i, payload in enumerate(payloads):
            packets.append(
                build_rtp(
                    payload,
                    payload_type=self.payload_type,
                    sequence_number=self.sequence_number,
                    timestamp=self.initial_timestamp,
                    ssrc=self.ssrc,
                    marker=(i == len(payloads) - 1),
                )
            )
            self.sequence_number = (self.sequence_number + 1) % SEQUENCE_MODULO
        return packets

    @staticmethod
    def _flush(batch: list[bytes]) -> list[bytes]:
        if not batch:
            return []
        if len(batch) == 1:
            return [bytes(batch[0])]
        f_bit = 0
        nri = 0
        body = bytearray()
        for nalu in batch:
            f_bit |= nalu[0] & 0x80
            nri = max(nri, nalu[0] & 0x60)
            body += len(nalu).to_bytes(2, "big")
            body += nalu
        return [bytes([f_bit | nri | NAL_STAP_A]) + bytes(body)]

    def _fragment(self, nalu: bytes) -> list[bytes]:
        header = nalu[0]
        indicator = (header & 0xE0) | NAL_FU_A
        typ = header & 0x1F
        body = nalu[1:]
        chunk = self.payload_max_size - 2
        out: list[bytes] = []
        for offset in range(0, len(body), chunk):
            fu_header = typ
            if offset == 0:
                fu_header |= _FU_START
            if offset + chunk >= len(body):
                fu_header |= _FU_END
            out.append(bytes([indicator, fu_header]) + body[offset : offset + chunk])
        return out


__all__ = ["H264Depacketizer", "H264Packetizer"]
