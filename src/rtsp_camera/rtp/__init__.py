"""RTP packet handling and H.264/H.265 payload formats."""

from rtsp_camera.codec.nalu import Codec

from .depacketizer import CONTINUATION_ERRORS, Depacketizer
from .h264 import H264Depacketizer, H264Packetizer
from .h265 import H265Depacketizer
from .packet import SequenceTracker, TimestampDecoder, build_rtp, parse_rtp


def new_depacketizer(codec: Codec) -> Depacketizer:
    if codec is Codec.H265:
        return H265Depacketizer()
    return H264Depacketizer()


__all__ = [
    "CONTINUATION_ERRORS",
    "Depacketizer",
    "H264Depacketizer",
    "H264Packetizer",
    "H265Depacketizer",
    "SequenceTracker",
    "TimestampDecoder",
    "build_rtp",
    "new_depacketizer",
    "parse_rtp",
]
