"""H.264 RTP passthrough: WebRTC re-packetization and subscriber fan-out."""

from .encoder import WEBRTC_PAYLOAD_MAX_SIZE, WEBRTC_PAYLOAD_TYPE, PassthroughEncoder
from .registry import SubscriptionRegistry
from .subscription import StreamSubscription, SubscriptionState

__all__ = [
    "PassthroughEncoder",
    "StreamSubscription",
    "SubscriptionRegistry",
    "SubscriptionState",
    "WEBRTC_PAYLOAD_MAX_SIZE",
    "WEBRTC_PAYLOAD_TYPE",
]
