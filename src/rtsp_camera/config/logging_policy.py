from __future__ import annotations

"""Centralised debug/logging policy for the RTSP camera stack.

The per-packet paths (receive loop, depacketizers, passthrough fan-out) are hot
and would flood the log at debug level. Each of those paths checks a flag on a
frozen policy object instead of reading the environment itself.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from rtsp_camera.utils.env import env_bool


@dataclass(frozen=True)
class LoggingToggles:
    """Per-packet logging flags."""

    log_packet_loss: bool = False
    log_keyframes: bool = True
    log_nals: bool = False
    log_subscription_drops: bool = False
    log_rtsp_exchanges: bool = False


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool = False
    logging: LoggingToggles = field(default_factory=LoggingToggles)


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    """Read logging flags from the provided environment mapping."""

    if env is None:
        env = os.environ

    enabled = env_bool("RTSP_CAMERA_DEBUG", False, env)
    toggles = LoggingToggles(
        # The master switch turns the chatty ones on unless explicitly disabled
        log_packet_loss=env_bool("RTSP_CAMERA_LOG_PACKET_LOSS", enabled, env),
        log_keyframes=env_bool("RTSP_CAMERA_LOG_KEYFRAMES", True, env),
        log_nals=env_bool("RTSP_CAMERA_LOG_NALS", False, env),
        log_subscription_drops=env_bool("RTSP_CAMERA_LOG_SUBSCRIPTION_DROPS", enabled, env),
        log_rtsp_exchanges=env_bool("RTSP_CAMERA_LOG_RTSP", False, env),
    )
    return DebugPolicy(enabled=enabled, logging=toggles)


__all__ = ["DebugPolicy", "LoggingToggles", "load_debug_policy"]
