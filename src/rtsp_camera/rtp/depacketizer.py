"""Access-unit assembly shared by the H.264 and H.265 depacketizers."""

from __future__ import annotations

import logging
from typing import Optional

from dpkt.rtp import RTP

from rtsp_camera.errors import (
    DepacketizeError,
    MorePacketsNeeded,
    NonStartingPacketAndNoPrevious,
)

logger = logging.getLogger(__name__)

MAX_ACCESS_UNIT_SIZE = 8 * 1024 * 1024
MAX_NALUS_PER_ACCESS_UNIT = 128

CONTINUATION_ERRORS = (MorePacketsNeeded, NonStartingPacketAndNoPrevious)


class Depacketizer:
    """Collects NAL units from RTP payloads until the marker bit closes an AU.

    Subclasses implement :meth:`_extract` for their payload format. ``decode``
    returns the NAL units of a complete access unit together with the packets
    that carried it, or raises one of the :data:`CONTINUATION_ERRORS` while
    an access unit is still incomplete.
    """

    def __init__(self) -> None:
        self._fragments: list[bytes] = []
        self._fragments_size = 0
        self._frame: list[bytes] = []
        self._frame_size = 0
        self._frame_packets: list[RTP] = []
        self._frame_ts: Optional[int] = None
        self._first_packet_received = False

    # -- subclass hooks --

    def _extract(self, pkt: RTP) -> list[bytes]:
        raise NotImplementedError

    # -- fragment bookkeeping for FU-style payloads --

    def _start_fragments(self, first: bytes) -> None:
        if self._fragments:
            logger.debug("discarding incomplete fragmented NAL unit (%d bytes)", self._fragments_size)
        self._fragments = [first]
        self._fragments_size = len(first)

    def _append_fragment(self, chunk: bytes) -> None:
        if not self._fragments:
            if not self._first_packet_received:
                raise NonStartingPacketAndNoPrevious(
                    "received a non-starting fragment without any previous starting fragment"
                )
            raise DepacketizeError("received a non-starting fragment after a lost starting fragment")
        self._fragments_size += len(chunk)
        if self._fragments_size > MAX_ACCESS_UNIT_SIZE:
            self._reset_fragments()
            raise DepacketizeError(f"fragmented NAL unit exceeds {MAX_ACCESS_UNIT_SIZE} bytes")
        self._fragments.append(chunk)

    def _finish_fragments(self) -> bytes:
        nalu = b"".join(self._fragments)
        self._reset_fragments()
        return nalu

    def _reset_fragments(self) -> None:
        self._fragments = []
        self._fragments_size = 0

    def _drop_pending_fragments(self) -> None:
        if self._fragments:
            logger.debug("fragmented NAL unit interrupted by a non-fragment packet")
            self._reset_fragments()

    # -- access unit assembly --

    def _reset_frame(self) -> None:
        self._frame = []
        self._frame_size = 0
        self._frame_packets = []
        self._frame_ts = None

    def decode(self, pkt: RTP) -> tuple[list[bytes], list[RTP]]:
        if self._frame_ts is not None and pkt.ts != self._frame_ts:
            # marker packet of the previous AU was lost
            logger.debug("RTP timestamp changed mid access unit; dropping %d NAL units", len(self._frame))
            self._reset_frame()
        try:
            nalus = self._extract(pkt)
        except MorePacketsNeeded:
            self._first_packet_received = True
            self._frame_packets.append(pkt)
            self._frame_ts = pkt.ts
            raise
        except DepacketizeError:
            self._reset_frame()
            raise
        self._first_packet_received = True

        size = sum(len(n) for n in nalus)
        if len(self._frame) + len(nalus) > MAX_NALUS_PER_ACCESS_UNIT:
            self._reset_frame()
            raise DepacketizeError(f"access unit has more than {MAX_NALUS_PER_ACCESS_UNIT} NAL units")
        if self._frame_size + size > MAX_ACCESS_UNIT_SIZE:
            self._reset_frame()
            raise DepacketizeError(f"access unit exceeds {MAX_ACCESS_UNIT_SIZE} bytes")
        self._frame.extend(nalus)
        self._frame_size += size
        self._frame_packets.append(pkt)
        self._frame_ts = pkt.ts

        if not pkt.m:
            raise MorePacketsNeeded()

        au, packets = self._frame, self._frame_packets
        self._reset_frame()
        return au, packets


__all__ = [
    "CONTINUATION_ERRORS",
    "Depacketizer",
    "MAX_ACCESS_UNIT_SIZE",
    "MAX_NALUS_PER_ACCESS_UNIT",
]
