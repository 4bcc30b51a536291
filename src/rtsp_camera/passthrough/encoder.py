"""
H.264 access units -> RTP packets sized for a WebRTC transport.

The incoming units were already reassembled for the decode path; here they are
re-packetized with a smaller payload limit (1200 byte MTU minus the 12 byte RTP
header) and re-timed onto the source RTP clock.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from dpkt.rtp import RTP

from rtsp_camera import metrics as m
from rtsp_camera.codec.nalu import Codec, find_parameter_sets
from rtsp_camera.codec.units import DecodedUnit, ParamCache
from rtsp_camera.errors import OrderingError, PacketizeError, PassthroughConfigurationError
from rtsp_camera.rtp.h264 import H264Packetizer
from rtsp_camera.rtp.packet import TIMESTAMP_MODULO

logger = logging.getLogger(__name__)

WEBRTC_PAYLOAD_MAX_SIZE = 1188
WEBRTC_PAYLOAD_TYPE = 96


class PassthroughEncoder:
    """Stateful re-packetizer for one H.264 track.

    Presentation timestamps must be non-decreasing: streams with B-frames
    cannot be forwarded and the offending unit is rejected with
    :class:`OrderingError`. Encoding failures drop the unit and return no
    packets.
    """

    def __init__(
        self,
        packetizer: Optional[H264Packetizer] = None,
        parameter_sets: Optional[Mapping[str, bytes]] = None,
        *,
        inject_parameter_sets: bool = True,
        metrics: Optional[m.Metrics] = None,
    ) -> None:
        self.packetizer = packetizer or H264Packetizer(
            payload_max_size=WEBRTC_PAYLOAD_MAX_SIZE,
            payload_type=WEBRTC_PAYLOAD_TYPE,
        )
        self.first_received = False
        self.last_pts = 0.0
        self.inject_parameter_sets = bool(inject_parameter_sets)
        self._params = ParamCache(
            sps=(parameter_sets or {}).get("sps") or None,
            pps=(parameter_sets or {}).get("pps") or None,
        )
        self._metrics = metrics

    def encode(self, unit: DecodedUnit) -> list[RTP]:
        if unit.codec is not Codec.H264:
            raise PassthroughConfigurationError(f"passthrough supports H264 only, got {unit.codec.value}")
        self._params.update(unit.nalus, Codec.H264)
        if not unit.has_payload:
            return []

        if not self.first_received:
            self.first_received = True
        elif unit.pts < self.last_pts:
            raise OrderingError("WebRTC doesn't support H264 streams with B-frames")
        self.last_pts = unit.pts

        nalus = self._with_parameter_sets(unit)
        try:
            packets = self.packetizer.packetize(nalus)
        except PacketizeError as exc:
            logger.debug("passthrough unit dropped at pts=%.3f: %s", unit.pts, exc)
            if self._metrics is not None:
                self._metrics.inc(m.PASSTHROUGH_DROPPED_TOTAL)
            return []

        offset = unit.first_rtp_timestamp or 0
        for pkt in packets:
            pkt.ts = (pkt.ts + offset) % TIMESTAMP_MODULO
        if self._metrics is not None:
            self._metrics.inc(m.PASSTHROUGH_PACKETS_TOTAL, len(packets))
        return packets

    def remember_parameter_sets(self, unit: DecodedUnit) -> None:
        """Cache in-band SPS/PPS from a unit that is not being forwarded."""
        self._params.update(unit.nalus, Codec.H264)

    def _with_parameter_sets(self, unit: DecodedUnit) -> list[bytes]:
        nalus = list(unit.nalus)
        if not self.inject_parameter_sets or not unit.is_keyframe:
            return nalus
        present = find_parameter_sets(nalus, Codec.H264)
        prefix = [value for name, value in (("sps", self._params.sps), ("pps", self._params.pps))
                  if value is not None and name not in present]
        return prefix + nalus


__all__ = ["PassthroughEncoder", "WEBRTC_PAYLOAD_MAX_SIZE", "WEBRTC_PAYLOAD_TYPE"]
