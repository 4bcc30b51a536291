"""
rtsp-camera: RTSP H.264/H.265 ingest with keyframe-gated decode, automatic
reconnection and a WebRTC-sized H.264 RTP passthrough.
"""

from .camera import CameraProperties, RTSPCamera
from .config import CameraConfig, load_camera_config
from .errors import NoFrameYetError, PassthroughNotEnabledError, RTSPCameraError, SubscriptionNotFoundError

__version__ = "0.1.0"

__all__ = [
    "CameraConfig",
    "CameraProperties",
    "NoFrameYetError",
    "PassthroughNotEnabledError",
    "RTSPCamera",
    "RTSPCameraError",
    "SubscriptionNotFoundError",
    "__version__",
    "load_camera_config",
]
