"""Exception hierarchy for the RTSP camera stack."""

from __future__ import annotations


class RTSPCameraError(RuntimeError):
    """Base class for every error raised by this package."""


# ---- Configuration / negotiation --------------------------------------------


class ConfigurationError(RTSPCameraError):
    """Camera configuration is invalid or inconsistent with the source."""


class PassthroughConfigurationError(ConfigurationError):
    """RTP passthrough was requested for a source that cannot provide it."""


class NegotiationError(RTSPCameraError):
    """The RTSP source does not advertise a usable video track."""


class UnsupportedCodecError(NegotiationError):
    pass


class TrackNotFoundError(NegotiationError):
    pass


# ---- Transport --------------------------------------------------------------


class RTSPError(RTSPCameraError):
    """Malformed or unexpected RTSP exchange."""


class RTSPStatusError(RTSPError):
    def __init__(self, method: str, status_code: int, reason: str = "") -> None:
        super().__init__(f"{method} returned {status_code} {reason}".rstrip())
        self.method = method
        self.status_code = int(status_code)
        self.reason = reason


class ClientTerminatedError(RTSPError):
    """The RTSP client was closed or its reader thread exited."""


# ---- Depacketization / decode -----------------------------------------------


class DepacketizeError(RTSPCameraError):
    """An RTP payload could not be turned into NAL units."""


class MorePacketsNeeded(DepacketizeError):
    """The access unit is not complete yet."""


class NonStartingPacketAndNoPrevious(DepacketizeError):
    """A fragment arrived without the fragment that starts its NAL unit."""


class PacketizeError(RTSPCameraError):
    pass


class DecodeError(RTSPCameraError):
    """The decoder rejected compressed data."""


class OrderingError(RTSPCameraError):
    """Presentation timestamps went backwards (B-frames are not supported)."""


# ---- Passthrough subscriptions ----------------------------------------------


class PassthroughNotEnabledError(RTSPCameraError):
    def __init__(self) -> None:
        super().__init__("H264 passthrough is not enabled")


class SubscriptionNotFoundError(RTSPCameraError):
    pass


class QueueFullError(RTSPCameraError):
    pass


class NoFrameYetError(RTSPCameraError):
    def __init__(self) -> None:
        super().__init__("no frame yet")


__all__ = [
    "ClientTerminatedError",
    "ConfigurationError",
    "DecodeError",
    "DepacketizeError",
    "MorePacketsNeeded",
    "NegotiationError",
    "NoFrameYetError",
    "NonStartingPacketAndNoPrevious",
    "OrderingError",
    "PacketizeError",
    "PassthroughConfigurationError",
    "PassthroughNotEnabledError",
    "QueueFullError",
    "RTSPCameraError",
    "RTSPError",
    "RTSPStatusError",
    "SubscriptionNotFoundError",
    "TrackNotFoundError",
    "UnsupportedCodecError",
]
