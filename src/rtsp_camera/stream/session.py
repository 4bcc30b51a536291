"""
One RTSP session: connect, negotiate a video track, and route its packets.

A session is single-use. Reconnecting means closing it and building a new one
(see :mod:`rtsp_camera.stream.supervisor`); decode state therefore never
outlives the connection that produced it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from dpkt.rtp import RTP

from rtsp_camera import metrics as m
from rtsp_camera.codec.decoders import FrameDecoder, new_decoder
from rtsp_camera.codec.nalu import Codec
from rtsp_camera.config.models import CameraConfig
from rtsp_camera.errors import (
    ClientTerminatedError,
    OrderingError,
    PassthroughConfigurationError,
    RTSPError,
    TrackNotFoundError,
    UnsupportedCodecError,
)
from rtsp_camera.passthrough.encoder import PassthroughEncoder
from rtsp_camera.passthrough.registry import SubscriptionRegistry
from rtsp_camera.rtp.h264 import H264Packetizer
from rtsp_camera.rtsp.client import RTSPClient, RTSPResponse
from rtsp_camera.rtsp.sdp import MediaDescription, MediaFormat, SessionDescription

from .decode_pipeline import DecodePipeline
from .frame_slot import FrameSlot

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., RTSPClient]
DecoderFactory = Callable[[Codec], FrameDecoder]


class StreamSession:
    """RTSP connection plus the decode pipeline (and passthrough encoder) for one track."""

    def __init__(
        self,
        config: CameraConfig,
        frame_slot: FrameSlot,
        registry: SubscriptionRegistry,
        *,
        metrics: Optional[m.Metrics] = None,
        client_factory: ClientFactory = RTSPClient,
        decoder_factory: DecoderFactory = new_decoder,
    ) -> None:
        self.config = config
        self.address = config.rtsp_address
        self.frame_slot = frame_slot
        self.registry = registry
        self.metrics = metrics
        self._client_factory = client_factory
        self._decoder_factory = decoder_factory
        self._policy = config.debug_policy
        self.client: Optional[RTSPClient] = None
        self.codec: Optional[Codec] = None
        self.pipeline: Optional[DecodePipeline] = None
        self.encoder: Optional[PassthroughEncoder] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def passthrough_requested(self) -> bool:
        return bool(self.config.rtp_passthrough)

    # -- negotiation --

    def connect(self) -> None:
        """Negotiate and start playback: DESCRIBE, SETUP one track, PLAY.

        Any failure tears down whatever was opened and re-raises.
        """
        if self._closed:
            raise RTSPError("session already closed")
        if self.client is not None:
            raise RTSPError("session already connected")
        tuning = self.config.tuning
        client = self._client_factory(
            self.address,
            timeout=tuning.rtsp_timeout_s,
            user_agent=tuning.user_agent,
            on_packet_lost=self._on_packet_lost,
            on_decode_error=self._on_rtp_error,
            log_exchanges=self._policy.logging.log_rtsp_exchanges,
        )
        self.client = client
        try:
            client.start()
            description = client.describe()
            codec, media, fmt = self._select_track(description)
            client.setup(description, media)
            self.codec = codec
            self.pipeline = DecodePipeline(
                codec,
                self._decoder_factory(codec),
                self.frame_slot,
                fmt.parameter_sets(),
                clock_rate=fmt.clock_rate,
                policy=self._policy,
                metrics=self.metrics,
            )
            if codec is Codec.H264 and self.passthrough_requested:
                self.encoder = PassthroughEncoder(
                    H264Packetizer(
                        payload_max_size=tuning.passthrough_payload_max_size,
                        payload_type=tuning.passthrough_payload_type,
                    ),
                    fmt.parameter_sets(),
                    metrics=self.metrics,
                )
            client.on_packet_rtp(media, self.handle_packet)
            client.play()
        except BaseException:
            self.close()
            raise
        logger.info(
            "RTSP session to %s playing (%s, passthrough=%s)",
            self.address,
            codec.value,
            self.encoder is not None,
        )

    def _select_track(self, description: SessionDescription) -> tuple[Codec, MediaDescription, MediaFormat]:
        found = description.find_format(Codec.H264)
        if found is not None:
            return (Codec.H264, *found)
        found = description.find_format(Codec.H265)
        if found is not None:
            if self.passthrough_requested:
                raise PassthroughConfigurationError(
                    "H265 source cannot be forwarded; disable rtp_passthrough for this camera"
                )
            return (Codec.H265, *found)
        videos = [media for media in description.medias if media.media_type == "video"]
        if not videos:
            raise TrackNotFoundError(f"{self.address} advertises no video track")
        raise UnsupportedCodecError(
            "no H264 or H265 track; advertised: " + "; ".join(media.describe() for media in videos)
        )

    # -- packet path (RTSP reader thread) --

    def handle_packet(self, pkt: RTP) -> None:
        if self.metrics is not None:
            self.metrics.inc(m.PACKETS_TOTAL)
        pipeline = self.pipeline
        if pipeline is None:
            return
        try:
            unit = pipeline.handle_packet(pkt)
        except Exception:
            logger.exception("decode pipeline failed")
            return
        encoder = self.encoder
        if unit is None or encoder is None:
            return
        if not self.registry.has_subscribers:
            encoder.remember_parameter_sets(unit)
            return
        try:
            packets = encoder.encode(unit)
        except OrderingError as exc:
            logger.error("passthrough unit rejected at pts=%.3f: %s", unit.pts, exc)
            return
        except Exception:
            logger.exception("passthrough encoder failed")
            return
        if packets:
            self.registry.publish(packets)

    def _on_packet_lost(self, count: int) -> None:
        if self.metrics is not None:
            self.metrics.inc(m.PACKETS_LOST_TOTAL, count)
        if self._policy.logging.log_packet_loss:
            logger.info("%d RTP packets lost from %s", count, self.address)

    def _on_rtp_error(self, exc: Exception) -> None:
        if self.metrics is not None:
            self.metrics.inc(m.RTP_ERRORS_TOTAL)
        logger.debug("invalid RTP packet from %s: %s", self.address, exc)

    # -- health / teardown --

    def probe(self) -> RTSPResponse:
        client = self.client
        if client is None or self._closed:
            raise ClientTerminatedError("session is not connected")
        return client.options()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        client, self.client = self.client, None
        pipeline, self.pipeline = self.pipeline, None
        self.encoder = None
        try:
            if client is not None:
                client.close()
        finally:
            if pipeline is not None:
                pipeline.close()
        logger.debug("RTSP session to %s closed", self.address)


__all__ = ["StreamSession"]
