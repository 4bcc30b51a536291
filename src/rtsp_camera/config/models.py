"""Configuration dataclasses for the RTSP camera."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

from rtsp_camera.config.logging_policy import DebugPolicy, load_debug_policy
from rtsp_camera.errors import ConfigurationError


SUPPORTED_SCHEMES = ("rtsp", "rtsps")


@dataclass(frozen=True)
class PinholeIntrinsics:
    """Pinhole camera model in pixels."""

    width_px: int
    height_px: int
    fx: float
    fy: float
    ppx: float
    ppy: float

    def check_valid(self) -> None:
        if self.width_px <= 0 or self.height_px <= 0:
            raise ConfigurationError(
                f"invalid image size {self.width_px}x{self.height_px}; width and height must be positive"
            )
        if self.fx <= 0 or self.fy <= 0:
            raise ConfigurationError(f"invalid focal length fx={self.fx} fy={self.fy}; must be positive")
        if not (0 <= self.ppx <= self.width_px and 0 <= self.ppy <= self.height_px):
            raise ConfigurationError(
                f"principal point ({self.ppx}, {self.ppy}) lies outside the image"
            )


@dataclass(frozen=True)
class BrownConradyDistortion:
    """Radial (rk*) and tangential (tp*) distortion coefficients."""

    rk1: float = 0.0
    rk2: float = 0.0
    rk3: float = 0.0
    tp1: float = 0.0
    tp2: float = 0.0

    def coefficients(self) -> tuple[float, float, float, float, float]:
        return (self.rk1, self.rk2, self.rk3, self.tp1, self.tp2)

    def check_valid(self) -> None:
        for value in self.coefficients():
            if not math.isfinite(value):
                raise ConfigurationError(f"distortion coefficient {value} is not finite")


@dataclass(frozen=True)
class SessionTuning:
    """Timing and wire parameters for the session and its supervisor."""

    reconnect_interval_s: float = 5.0
    rtsp_timeout_s: float = 10.0
    close_timeout_s: float = 2.0
    # 1200 bytes of WebRTC MTU budget minus the 12 byte RTP header
    passthrough_payload_max_size: int = 1188
    passthrough_payload_type: int = 96
    user_agent: str = "rtsp-camera"


@dataclass(frozen=True)
class CameraConfig:
    """Attributes of one RTSP camera."""

    rtsp_address: str
    rtp_passthrough: bool = False
    intrinsic_parameters: Optional[PinholeIntrinsics] = None
    distortion_parameters: Optional[BrownConradyDistortion] = None
    tuning: SessionTuning = field(default_factory=SessionTuning)
    debug_policy: DebugPolicy = field(default_factory=lambda: load_debug_policy({}))

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` when the attributes are unusable."""

        parts = urlsplit(self.rtsp_address or "")
        if parts.scheme not in SUPPORTED_SCHEMES:
            raise ConfigurationError(
                f"unsupported scheme {parts.scheme!r} in {self.rtsp_address!r}; expected rtsp or rtsps"
            )
        if not parts.hostname:
            raise ConfigurationError(f"missing host in {self.rtsp_address!r}")
        try:
            parts.port
        except ValueError as exc:
            raise ConfigurationError(f"invalid port in {self.rtsp_address!r}") from exc
        if self.intrinsic_parameters is not None:
            self.intrinsic_parameters.check_valid()
        if self.distortion_parameters is not None:
            self.distortion_parameters.check_valid()
        if self.tuning.reconnect_interval_s <= 0:
            raise ConfigurationError("reconnect interval must be positive")
        if self.tuning.passthrough_payload_max_size < 3:
            raise ConfigurationError("passthrough payload size too small for FU-A fragments")


__all__ = [
    "BrownConradyDistortion",
    "CameraConfig",
    "PinholeIntrinsics",
    "SUPPORTED_SCHEMES",
    "SessionTuning",
]
