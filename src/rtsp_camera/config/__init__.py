"""Configuration dataclasses and loaders for the RTSP camera."""

from .loader import load_camera_config, load_camera_config_json, load_session_tuning
from .logging_policy import DebugPolicy, LoggingToggles, load_debug_policy
from .models import (
    BrownConradyDistortion,
    CameraConfig,
    PinholeIntrinsics,
    SessionTuning,
)

__all__ = [
    "BrownConradyDistortion",
    "CameraConfig",
    "DebugPolicy",
    "LoggingToggles",
    "PinholeIntrinsics",
    "SessionTuning",
    "load_camera_config",
    "load_camera_config_json",
    "load_debug_policy",
    "load_session_tuning",
]
