"""RTSP control connection: SDP, authentication and the interleaved client."""

from .auth import Authenticator
from .client import RTSPClient, RTSPResponse
from .sdp import MediaDescription, MediaFormat, SessionDescription, parse_sdp

__all__ = [
    "Authenticator",
    "MediaDescription",
    "MediaFormat",
    "RTSPClient",
    "RTSPResponse",
    "SessionDescription",
    "parse_sdp",
]
