"""Codec-level helpers: NAL inspection, access units and PyAV decoders."""

from .decoders import FrameDecoder, H264Decoder, H265Decoder, new_decoder
from .nalu import (
    Codec,
    contains_keyframe,
    contains_vcl,
    find_parameter_sets,
    to_annexb,
)
from .units import DecodedUnit, ParamCache

__all__ = [
    "Codec",
    "DecodedUnit",
    "FrameDecoder",
    "H264Decoder",
    "H265Decoder",
    "ParamCache",
    "contains_keyframe",
    "contains_vcl",
    "find_parameter_sets",
    "new_decoder",
    "to_annexb",
]
