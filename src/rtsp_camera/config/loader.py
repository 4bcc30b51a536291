"""Build :class:`CameraConfig` from JSON-style attribute mappings and env."""

from __future__ import annotations

import json
import logging
import os
from typing import Mapping, Optional

from rtsp_camera.config.logging_policy import load_debug_policy
from rtsp_camera.config.models import (
    BrownConradyDistortion,
    CameraConfig,
    PinholeIntrinsics,
    SessionTuning,
)
from rtsp_camera.errors import ConfigurationError
from rtsp_camera.utils.env import env_float, env_int, env_str


logger = logging.getLogger(__name__)


# ---- Coercion helpers --------------------------------------------------------

def _cfg_bool(value: object, default: bool) -> bool:
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        val = value.strip().lower()
        if val in {"1", "true", "yes", "on"}:
            return True
        if val in {"0", "false", "no", "off", ""}:
            return False
    return bool(default)


def _cfg_float(value: object, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ConfigurationError(f"{name} must be a number, got {value!r}")


def _cfg_int(value: object, name: str) -> int:
    number = _cfg_float(value, name)
    if not number.is_integer():
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    return int(number)


def _cfg_mapping(value: object, name: str) -> Optional[Mapping[str, object]]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value
    raise ConfigurationError(f"{name} must be an object, got {type(value).__name__}")


# ---- Section parsers ---------------------------------------------------------

def _parse_intrinsics(raw: Mapping[str, object]) -> PinholeIntrinsics:
    try:
        return PinholeIntrinsics(
            width_px=_cfg_int(raw["width_px"], "width_px"),
            height_px=_cfg_int(raw["height_px"], "height_px"),
            fx=_cfg_float(raw["fx"], "fx"),
            fy=_cfg_float(raw["fy"], "fy"),
            ppx=_cfg_float(raw["ppx"], "ppx"),
            ppy=_cfg_float(raw["ppy"], "ppy"),
        )
    except KeyError as exc:
        raise ConfigurationError(f"intrinsic_parameters missing field {exc.args[0]!r}") from exc


def _parse_distortion(raw: Mapping[str, object]) -> BrownConradyDistortion:
    values = {}
    for key in ("rk1", "rk2", "rk3", "tp1", "tp2"):
        if key in raw and raw[key] is not None:
            values[key] = _cfg_float(raw[key], key)
    return BrownConradyDistortion(**values)


def load_session_tuning(env: Optional[Mapping[str, str]] = None) -> SessionTuning:
    """Resolve session tuning from ``RTSP_CAMERA_*`` environment overrides."""

    if env is None:
        env = os.environ
    base = SessionTuning()
    return SessionTuning(
        reconnect_interval_s=env_float("RTSP_CAMERA_RECONNECT_INTERVAL", base.reconnect_interval_s, env),
        rtsp_timeout_s=env_float("RTSP_CAMERA_RTSP_TIMEOUT", base.rtsp_timeout_s, env),
        close_timeout_s=env_float("RTSP_CAMERA_CLOSE_TIMEOUT", base.close_timeout_s, env),
        passthrough_payload_max_size=env_int(
            "RTSP_CAMERA_PASSTHROUGH_PAYLOAD_SIZE", base.passthrough_payload_max_size, env
        ),
        passthrough_payload_type=env_int("RTSP_CAMERA_PASSTHROUGH_PAYLOAD_TYPE", base.passthrough_payload_type, env),
        user_agent=env_str("RTSP_CAMERA_USER_AGENT", base.user_agent, env) or base.user_agent,
    )


def load_camera_config(
    attributes: Mapping[str, object],
    env: Optional[Mapping[str, str]] = None,
) -> CameraConfig:
    """Build and validate a camera config from resource attributes.

    Attribute names follow the JSON shape used by camera resource configs:
    ``rtsp_address``, ``rtp_passthrough``, ``intrinsic_parameters`` and
    ``distortion_parameters``. Unknown keys are ignored with a debug log.
    """

    if env is None:
        env = os.environ
    known = {"rtsp_address", "rtp_passthrough", "intrinsic_parameters", "distortion_parameters"}
    extra = sorted(set(attributes) - known)
    if extra:
        logger.debug("ignoring unknown camera attributes: %s", ", ".join(extra))

    address = attributes.get("rtsp_address")
    if not isinstance(address, str) or not address.strip():
        raise ConfigurationError("rtsp_address is required")

    intrinsics_raw = _cfg_mapping(attributes.get("intrinsic_parameters"), "intrinsic_parameters")
    distortion_raw = _cfg_mapping(attributes.get("distortion_parameters"), "distortion_parameters")

    config = CameraConfig(
        rtsp_address=address.strip(),
        rtp_passthrough=_cfg_bool(attributes.get("rtp_passthrough"), False),
        intrinsic_parameters=_parse_intrinsics(intrinsics_raw) if intrinsics_raw is not None else None,
        distortion_parameters=_parse_distortion(distortion_raw) if distortion_raw is not None else None,
        tuning=load_session_tuning(env),
        debug_policy=load_debug_policy(env),
    )
    config.validate()
    return config


def load_camera_config_json(raw: str, env: Optional[Mapping[str, str]] = None) -> CameraConfig:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"camera config is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("camera config must be a JSON object")
    return load_camera_config(data, env)


__all__ = ["load_camera_config", "load_camera_config_json", "load_session_tuning"]
