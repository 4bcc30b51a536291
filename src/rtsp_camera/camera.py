"""
Host-facing RTSP camera: latest decoded frame, calibration metadata and the
H.264 RTP passthrough subscription API.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

import numpy as np

from rtsp_camera.codec.decoders import new_decoder
from rtsp_camera.config.models import BrownConradyDistortion, CameraConfig, PinholeIntrinsics
from rtsp_camera.metrics import Metrics
from rtsp_camera.passthrough.registry import SubscriptionRegistry
from rtsp_camera.passthrough.subscription import ErrorHandler, PacketsCallback
from rtsp_camera.rtsp.client import RTSPClient
from rtsp_camera.stream.frame_slot import FrameSlot
from rtsp_camera.stream.session import ClientFactory, DecoderFactory, StreamSession
from rtsp_camera.stream.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraProperties:
    intrinsic_parameters: Optional[PinholeIntrinsics]
    distortion_parameters: Optional[BrownConradyDistortion]
    supports_pcd: bool = False


class RTSPCamera:
    """One RTSP source exposed as a pollable camera.

    Construction connects synchronously (errors propagate) and then starts the
    reconnect supervisor. Subscriptions live in a registry owned by the camera,
    so they survive reconnects.
    """

    def __init__(
        self,
        config: CameraConfig,
        *,
        metrics: Optional[Metrics] = None,
        client_factory: ClientFactory = RTSPClient,
        decoder_factory: DecoderFactory = new_decoder,
    ) -> None:
        config.validate()
        self.config = config
        self.metrics = metrics or Metrics()
        self.frame_slot = FrameSlot()
        self.registry = SubscriptionRegistry(
            config.rtp_passthrough,
            log_drops=config.debug_policy.logging.log_subscription_drops,
            metrics=self.metrics,
        )
        self._stop = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False

        def _new_session() -> StreamSession:
            return StreamSession(
                config,
                self.frame_slot,
                self.registry,
                metrics=self.metrics,
                client_factory=client_factory,
                decoder_factory=decoder_factory,
            )

        self.supervisor = ConnectionSupervisor(
            _new_session,
            interval_s=config.tuning.reconnect_interval_s,
            stop_event=self._stop,
            metrics=self.metrics,
        )
        self.supervisor.connect()
        self.supervisor.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def latest_frame(self) -> np.ndarray:
        """Most recent decoded RGB frame; raises NoFrameYetError before the first."""
        return self.frame_slot.load()

    def properties(self) -> CameraProperties:
        return CameraProperties(
            intrinsic_parameters=self.config.intrinsic_parameters,
            distortion_parameters=self.config.distortion_parameters,
        )

    def subscribe_rtp(
        self,
        buffer_size: int,
        packets_callback: PacketsCallback,
        on_error: Optional[ErrorHandler] = None,
    ) -> uuid.UUID:
        return self.registry.subscribe(buffer_size, packets_callback, on_error)

    def unsubscribe(self, sub_id: uuid.UUID) -> None:
        self.registry.unsubscribe(sub_id)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.supervisor.stop()
        self.registry.unsubscribe_all()
        self.supervisor.close_session()
        self.supervisor.join(timeout=self.config.tuning.close_timeout_s + self.config.tuning.rtsp_timeout_s)
        logger.info("RTSP camera %s closed", self.config.rtsp_address)

    def __enter__(self) -> "RTSPCamera":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = ["CameraProperties", "RTSPCamera"]
