"""
Access-unit containers passed between depacketization, decode and passthrough.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .nalu import Codec, contains_keyframe, contains_vcl, find_parameter_sets

if TYPE_CHECKING:  # pragma: no cover - typing aid only
    from dpkt.rtp import RTP


@dataclass(frozen=True)
class DecodedUnit:
    """One codec access unit reassembled from RTP packets.

    - nalus: raw NAL units in decode order, without start codes.
    - pts: presentation timestamp in seconds relative to the track start.
    - rtp_packets: the transport packets the unit was built from, first to last.
    """

    codec: Codec
    nalus: tuple[bytes, ...]
    pts: float
    rtp_packets: tuple["RTP", ...] = ()

    @property
    def is_keyframe(self) -> bool:
        return contains_keyframe(self.nalus, self.codec)

    @property
    def has_payload(self) -> bool:
        return contains_vcl(self.nalus, self.codec)

    @property
    def first_rtp_timestamp(self) -> Optional[int]:
        if not self.rtp_packets:
            return None
        return int(self.rtp_packets[0].ts)


@dataclass
class ParamCache:
    """Latest parameter sets seen for a track, out-of-band or in-band."""

    vps: Optional[bytes] = None
    sps: Optional[bytes] = None
    pps: Optional[bytes] = None

    def update(self, nalus, codec: Codec) -> bool:
        """Record parameter sets found in `nalus`; True if any changed."""
        changed = False
        for name, value in find_parameter_sets(nalus, codec).items():
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
        return changed

    def missing(self, codec: Codec) -> list[str]:
        names = ["vps", "sps", "pps"] if codec is Codec.H265 else ["sps", "pps"]
        return [name for name in names if getattr(self, name) is None]


__all__ = ["DecodedUnit", "ParamCache"]
