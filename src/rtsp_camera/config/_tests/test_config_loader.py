import math

import pytest

from rtsp_camera.config import (
    CameraConfig,
    load_camera_config,
    load_camera_config_json,
    load_debug_policy,
    load_session_tuning,
)
from rtsp_camera.config.models import BrownConradyDistortion, PinholeIntrinsics
from rtsp_camera.errors import ConfigurationError


def test_minimal_config_defaults():
    config = load_camera_config({"rtsp_address": "rtsp://10.0.0.5:554/stream1"}, env={})
    assert config.rtsp_address == "rtsp://10.0.0.5:554/stream1"
    assert config.rtp_passthrough is False
    assert config.intrinsic_parameters is None
    assert config.distortion_parameters is None
    assert config.tuning.reconnect_interval_s == 5.0
    assert config.tuning.passthrough_payload_max_size == 1188
    assert config.tuning.passthrough_payload_type == 96


def test_full_config_parses_calibration():
    attrs = {
        "rtsp_address": "rtsps://cam.local/live",
        "rtp_passthrough": "true",
        "intrinsic_parameters": {"width_px": 640, "height_px": 480, "fx": 500, "fy": 500.5, "ppx": 320, "ppy": 240},
        "distortion_parameters": {"rk1": 0.1, "rk2": "-0.02", "tp1": 0.001},
    }
    config = load_camera_config(attrs, env={})
    assert config.rtp_passthrough is True
    assert config.intrinsic_parameters == PinholeIntrinsics(640, 480, 500.0, 500.5, 320.0, 240.0)
    assert config.distortion_parameters.coefficients() == (0.1, -0.02, 0.0, 0.001, 0.0)


@pytest.mark.parametrize(
    "address",
    ["http://cam/stream", "rtsp:///nohost", "", "rtsp://cam:notaport/x"],
)
def test_invalid_addresses_rejected(address):
    with pytest.raises(ConfigurationError):
        load_camera_config({"rtsp_address": address}, env={})


def test_invalid_intrinsics_rejected():
    attrs = {
        "rtsp_address": "rtsp://cam/stream",
        "intrinsic_parameters": {"width_px": 0, "height_px": 480, "fx": 1, "fy": 1, "ppx": 0, "ppy": 0},
    }
    with pytest.raises(ConfigurationError):
        load_camera_config(attrs, env={})


def test_missing_intrinsic_field_rejected():
    attrs = {"rtsp_address": "rtsp://cam/stream", "intrinsic_parameters": {"width_px": 10}}
    with pytest.raises(ConfigurationError, match="height_px"):
        load_camera_config(attrs, env={})


def test_non_finite_distortion_rejected():
    with pytest.raises(ConfigurationError):
        BrownConradyDistortion(rk1=math.inf).check_valid()


def test_env_overrides_tuning_and_policy():
    env = {
        "RTSP_CAMERA_RECONNECT_INTERVAL": "1.5",
        "RTSP_CAMERA_PASSTHROUGH_PAYLOAD_SIZE": "1000",
        "RTSP_CAMERA_USER_AGENT": "probe/1",
        "RTSP_CAMERA_DEBUG": "1",
        "RTSP_CAMERA_LOG_NALS": "yes",
    }
    tuning = load_session_tuning(env)
    assert tuning.reconnect_interval_s == 1.5
    assert tuning.passthrough_payload_max_size == 1000
    assert tuning.user_agent == "probe/1"
    policy = load_debug_policy(env)
    assert policy.enabled is True
    assert policy.logging.log_nals is True
    assert policy.logging.log_packet_loss is True
    assert policy.logging.log_subscription_drops is True


def test_debug_policy_defaults():
    policy = load_debug_policy({})
    assert policy.enabled is False
    assert policy.logging.log_keyframes is True
    assert policy.logging.log_packet_loss is False
    assert policy.logging.log_rtsp_exchanges is False


def test_json_loader():
    config = load_camera_config_json('{"rtsp_address": "rtsp://cam/a", "rtp_passthrough": true}', env={})
    assert isinstance(config, CameraConfig)
    assert config.rtp_passthrough is True
    with pytest.raises(ConfigurationError):
        load_camera_config_json("[1, 2]", env={})
    with pytest.raises(ConfigurationError):
        load_camera_config_json("{not json", env={})
