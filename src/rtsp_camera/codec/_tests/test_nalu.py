from rtsp_camera.codec.nalu import (
    Codec,
    contains_keyframe,
    contains_vcl,
    find_parameter_sets,
    nal_type,
    to_annexb,
)
from rtsp_camera.codec.units import DecodedUnit, ParamCache

SPS = b"\x67\x42\x00\x1e\xab"
PPS = b"\x68\xce\x38\x80"
IDR = b"\x65\x88\x84\x00\x10"
NON_IDR = b"\x41\x9a\x02"
SEI = b"\x06\x05\x01"

H265_VPS = bytes([32 << 1, 1, 0x0C])
H265_SPS = bytes([33 << 1, 1, 0x01])
H265_PPS = bytes([34 << 1, 1, 0xC1])
H265_IDR = bytes([19 << 1, 1, 0xAF])
H265_TRAIL = bytes([1 << 1, 1, 0xD0])


def test_h264_nal_types():
    assert nal_type(SPS, Codec.H264) == 7
    assert nal_type(IDR, Codec.H264) == 5
    assert nal_type(b"", Codec.H264) == -1
    assert contains_keyframe([SPS, PPS, IDR], Codec.H264)
    assert not contains_keyframe([NON_IDR], Codec.H264)
    assert contains_vcl([SEI, NON_IDR], Codec.H264)
    assert not contains_vcl([SPS, PPS, SEI], Codec.H264)


def test_h265_nal_types():
    assert nal_type(H265_VPS, Codec.H265) == 32
    assert contains_keyframe([H265_VPS, H265_SPS, H265_PPS, H265_IDR], Codec.H265)
    assert not contains_keyframe([H265_TRAIL], Codec.H265)
    assert contains_vcl([H265_TRAIL], Codec.H265)
    assert not contains_vcl([H265_VPS, H265_SPS], Codec.H265)


def test_find_parameter_sets_keeps_first():
    found = find_parameter_sets([SPS, PPS, b"\x67\x00", IDR], Codec.H264)
    assert found == {"sps": SPS, "pps": PPS}
    found = find_parameter_sets([H265_VPS, H265_SPS, H265_PPS], Codec.H265)
    assert set(found) == {"vps", "sps", "pps"}


def test_to_annexb_prefixes_start_code():
    data = to_annexb(IDR)
    assert data == b"\x00\x00\x00\x01" + IDR
    assert to_annexb(bytearray(SPS)).endswith(SPS)


def test_param_cache_tracks_changes():
    cache = ParamCache()
    assert cache.missing(Codec.H264) == ["sps", "pps"]
    assert cache.update([SPS, IDR], Codec.H264) is True
    assert cache.missing(Codec.H264) == ["pps"]
    assert cache.update([SPS], Codec.H264) is False
    cache.update([PPS], Codec.H264)
    assert (cache.sps, cache.pps) == (SPS, PPS)
    assert cache.missing(Codec.H264) == []
    assert cache.missing(Codec.H265) == ["vps"]


def test_decoded_unit_properties():
    unit = DecodedUnit(codec=Codec.H264, nalus=(SPS, PPS, IDR), pts=0.0)
    assert unit.is_keyframe
    assert unit.has_payload
    assert unit.first_rtp_timestamp is None
    params_only = DecodedUnit(codec=Codec.H264, nalus=(SPS, PPS), pts=0.0)
    assert not params_only.has_payload
