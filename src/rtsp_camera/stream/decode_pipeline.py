"""
Per-track decode path: RTP packets -> access units -> keyframe gate -> images.

The pipeline is driven from the RTSP reader thread, one packet at a time. It
never raises out of :meth:`DecodePipeline.handle_packet`; every failure is
either absorbed (incomplete access units) or logged and the unit abandoned.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Mapping, Optional

from dpkt.rtp import RTP

from rtsp_camera import metrics as m
from rtsp_camera.codec.decoders import FrameDecoder
from rtsp_camera.codec.nalu import Codec, describe_nalus, parameter_set_types, nal_type
from rtsp_camera.codec.units import DecodedUnit, ParamCache
from rtsp_camera.config.logging_policy import DebugPolicy
from rtsp_camera.errors import DecodeError, DepacketizeError
from rtsp_camera.rtp import CONTINUATION_ERRORS, TimestampDecoder, new_depacketizer

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    AWAITING_PARAMETERS = "awaiting_parameters"
    AWAITING_KEYFRAME = "awaiting_keyframe"
    STREAMING = "streaming"


class DecodePipeline:
    """Keyframe-gated decoder feeding a :class:`FrameSlot`."""

    def __init__(
        self,
        codec: Codec,
        decoder: FrameDecoder,
        frame_slot,
        parameter_sets: Optional[Mapping[str, bytes]] = None,
        *,
        clock_rate: int = 90000,
        policy: Optional[DebugPolicy] = None,
        metrics: Optional[m.Metrics] = None,
    ) -> None:
        self.codec = codec
        self._decoder = decoder
        self._slot = frame_slot
        self._policy = policy or DebugPolicy()
        self._metrics = metrics
        self._depacketizer = new_depacketizer(codec)
        self._timestamps = TimestampDecoder(clock_rate)
        self._params = ParamCache()
        self._closed = False

        for name, value in (parameter_sets or {}).items():
            if not value or name not in ("vps", "sps", "pps"):
                continue
            setattr(self._params, name, bytes(value))
            self._decoder.feed_parameter_set(bytes(value))
        for name in self._params.missing(codec):
            logger.warning("%s track description has no %s; waiting for it in-band", codec.value, name.upper())

        self.state = PipelineState.AWAITING_PARAMETERS if self._params.missing(codec) else PipelineState.AWAITING_KEYFRAME

    @property
    def parameter_sets(self) -> ParamCache:
        return self._params

    @property
    def closed(self) -> bool:
        return self._closed

    def handle_packet(self, pkt: RTP) -> Optional[DecodedUnit]:
        """Depacketize one packet; return the completed unit, if any.

        The returned unit is also what the passthrough path consumes, so it is
        returned whether or not the gate let it through to the decoder.
        """
        if self._closed:
            return None
        try:
            nalus, packets = self._depacketizer.decode(pkt)
        except CONTINUATION_ERRORS:
            return None
        except DepacketizeError as exc:
            logger.debug("%s depacketize error: %s", self.codec.value, exc)
            self._inc(m.RTP_ERRORS_TOTAL)
            return None
        unit = DecodedUnit(
            codec=self.codec,
            nalus=tuple(nalus),
            pts=self._timestamps.decode(packets[0].ts),
            rtp_packets=tuple(packets),
        )
        self.process(unit)
        return unit

    def process(self, unit: DecodedUnit) -> bool:
        """Run one access unit through the gate and decoder.

        Returns True when an image was stored in the frame slot.
        """
        if self._closed:
            return False
        self._inc(m.UNITS_TOTAL)
        if self._policy.logging.log_nals:
            logger.info("unit pts=%.3f %s", unit.pts, describe_nalus(unit.nalus, self.codec))

        self._params.update(unit.nalus, self.codec)
        if self.state is PipelineState.AWAITING_PARAMETERS and not self._params.missing(self.codec):
            logger.info("%s parameter sets complete; waiting for keyframe", self.codec.value)
            self.state = PipelineState.AWAITING_KEYFRAME
        if self.state is PipelineState.AWAITING_KEYFRAME and unit.is_keyframe:
            if self._policy.logging.log_keyframes:
                logger.info("%s keyframe at pts=%.3f; streaming", self.codec.value, unit.pts)
            self.state = PipelineState.STREAMING

        if self.state is not PipelineState.STREAMING:
            if unit.is_keyframe:
                logger.debug("%s keyframe discarded: missing %s", self.codec.value, self._params.missing(self.codec))
            self._feed_parameter_sets(unit)
            self._inc(m.UNITS_DISCARDED_TOTAL)
            return False

        stored = False
        t0 = time.perf_counter()
        for nalu in unit.nalus:
            try:
                image = self._decoder.decode(nalu)
            except DecodeError as exc:
                logger.warning("%s decode failed at pts=%.3f; unit abandoned: %s", self.codec.value, unit.pts, exc)
                self._inc(m.DECODE_ERRORS_TOTAL)
                return stored
            if image is not None:
                self._slot.store(image)
                stored = True
                self._inc(m.FRAMES_DECODED_TOTAL)
        if self._metrics is not None:
            self._metrics.observe_ms(m.DECODE_MS, (time.perf_counter() - t0) * 1000.0)
        return stored

    def _feed_parameter_sets(self, unit: DecodedUnit) -> None:
        # gated units are not decoded, but their in-band parameter sets must reach the decoder
        types = parameter_set_types(self.codec)
        for nalu in unit.nalus:
            if nalu and nal_type(nalu, self.codec) in types:
                self._decoder.feed_parameter_set(nalu)

    def _inc(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.inc(name)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._decoder.close()
        finally:
            logger.debug("%s decode pipeline closed (state=%s)", self.codec.value, self.state.value)


__all__ = ["DecodePipeline", "PipelineState"]
