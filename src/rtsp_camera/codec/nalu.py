"""
NAL unit helpers shared by the depacketizers, decoders and passthrough encoder.

Includes:
- NAL type extraction for H.264 and H.265 headers
- Keyframe (IDR / IRAP) and parameter-set detection over NAL lists
- Annex B framing for feeding FFmpeg decoders
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

START_CODE = b"\x00\x00\x00\x01"


class Codec(str, Enum):
    H264 = "h264"
    H265 = "h265"


# H.264 NAL unit types (ITU-T H.264 table 7-1)
H264_NAL_NON_IDR = 1
H264_NAL_IDR = 5
H264_NAL_SEI = 6
H264_NAL_SPS = 7
H264_NAL_PPS = 8
H264_NAL_AUD = 9

# H.265 NAL unit types (ITU-T H.265 table 7-1)
H265_NAL_IRAP_FIRST = 16
H265_NAL_IRAP_LAST = 21
H265_NAL_VPS = 32
H265_NAL_SPS = 33
H265_NAL_PPS = 34
H265_NAL_AUD = 35


# --- NAL type helpers ---


def nal_type_h264(b0: int) -> int:
    return b0 & 0x1F


def nal_type_h265(b0: int) -> int:
    return (b0 >> 1) & 0x3F


def nal_type(nalu: BytesLike, codec: Codec) -> int:
    if not nalu:
        return -1
    if codec is Codec.H265:
        return nal_type_h265(nalu[0])
    return nal_type_h264(nalu[0])


def is_keyframe_nal(nalu: BytesLike, codec: Codec) -> bool:
    t = nal_type(nalu, codec)
    if codec is Codec.H265:
        return H265_NAL_IRAP_FIRST <= t <= H265_NAL_IRAP_LAST
    return t == H264_NAL_IDR


def is_vcl_nal(nalu: BytesLike, codec: Codec) -> bool:
    """True for NAL units that carry coded slice data."""
    t = nal_type(nalu, codec)
    if codec is Codec.H265:
        return 0 <= t <= 31
    return 1 <= t <= 5


def contains_keyframe(nalus: Iterable[BytesLike], codec: Codec = Codec.H264) -> bool:
    return any(is_keyframe_nal(n, codec) for n in nalus if n)


def contains_vcl(nalus: Iterable[BytesLike], codec: Codec = Codec.H264) -> bool:
    return any(is_vcl_nal(n, codec) for n in nalus if n)


def parameter_set_types(codec: Codec) -> dict[int, str]:
    """Map parameter-set NAL types to their short names for `codec`."""
    if codec is Codec.H265:
        return {H265_NAL_VPS: "vps", H265_NAL_SPS: "sps", H265_NAL_PPS: "pps"}
    return {H264_NAL_SPS: "sps", H264_NAL_PPS: "pps"}


def find_parameter_sets(nalus: Sequence[BytesLike], codec: Codec = Codec.H264) -> dict[str, bytes]:
    """Return the first occurrence of each parameter set found in `nalus`."""
    wanted = parameter_set_types(codec)
    found: dict[str, bytes] = {}
    for n in nalus:
        if not n:
            continue
        name = wanted.get(nal_type(n, codec))
        if name is not None and name not in found:
            found[name] = bytes(n)
    return found


# --- Annex B ---


def to_annexb(nalu: BytesLike) -> bytes:
    return START_CODE + bytes(nalu)


def describe_nalus(nalus: Sequence[BytesLike], codec: Codec) -> str:
    """Compact `type:size` summary used by NAL debug logging."""
    return " ".join(f"{nal_type(n, codec)}:{len(n)}" for n in nalus)
