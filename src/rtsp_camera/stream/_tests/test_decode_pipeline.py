import numpy as np
import pytest

from rtsp_camera.codec.nalu import Codec
from rtsp_camera.codec.units import DecodedUnit
from rtsp_camera.conftest import StubDecoder
from rtsp_camera.errors import NoFrameYetError
from rtsp_camera.metrics import DECODE_ERRORS_TOTAL, FRAMES_DECODED_TOTAL, Metrics
from rtsp_camera.rtp import build_rtp
from rtsp_camera.stream.decode_pipeline import DecodePipeline, PipelineState
from rtsp_camera.stream.frame_slot import FrameSlot

SPS = b"\x67\x42\x00\x1e\xab"
PPS = b"\x68\xce\x38\x80"
IDR = b"\x65\x88\x84\x00"
P_SLICE = b"\x41\x9a\x02"

H265_VPS = bytes([32 << 1, 1, 0x0C])
H265_SPS = bytes([33 << 1, 1, 0x01])
H265_PPS = bytes([34 << 1, 1, 0xC1])
H265_IDR = bytes([19 << 1, 1, 0xAF])
H265_TRAIL = bytes([1 << 1, 1, 0xD0])


def _unit(*nalus, pts=0.0, codec=Codec.H264):
    return DecodedUnit(codec=codec, nalus=tuple(nalus), pts=pts)


def _pipeline(codec=Codec.H264, params=None, decoder=None, metrics=None):
    slot = FrameSlot()
    dec = decoder or StubDecoder(codec)
    pipe = DecodePipeline(codec, dec, slot, params, metrics=metrics)
    return pipe, dec, slot


def test_frame_slot_empty_until_store():
    slot = FrameSlot()
    assert slot.empty
    with pytest.raises(NoFrameYetError, match="no frame yet"):
        slot.load()
    img = np.zeros((2, 2, 3), dtype=np.uint8)
    slot.store(img)
    assert slot.load() is img
    assert slot.latest() is img


def test_out_of_band_parameter_sets_fed_at_construction():
    pipe, dec, _ = _pipeline(params={"sps": SPS, "pps": PPS})
    assert dec.parameter_sets == [SPS, PPS]
    assert pipe.state is PipelineState.AWAITING_KEYFRAME


def test_missing_parameter_sets_logged_not_fatal(caplog):
    caplog.set_level("WARNING")
    pipe, dec, _ = _pipeline(params={"sps": SPS})
    assert pipe.state is PipelineState.AWAITING_PARAMETERS
    assert "no PPS" in caplog.text
    assert dec.parameter_sets == [SPS]


def test_non_keyframe_then_keyframe():
    pipe, dec, slot = _pipeline(params={"sps": SPS, "pps": PPS})
    assert pipe.process(_unit(P_SLICE, pts=0.0)) is False
    assert slot.empty
    assert dec.decoded == []
    assert pipe.process(_unit(IDR, pts=0.033)) is True
    assert pipe.state is PipelineState.STREAMING
    first = slot.load()
    assert slot.load() is first
    assert slot.load() is first


def test_slot_stays_empty_through_non_keyframes():
    pipe, _, slot = _pipeline(params={"sps": SPS, "pps": PPS})
    for i in range(5):
        pipe.process(_unit(P_SLICE, pts=i * 0.04))
    assert slot.empty
    pipe.process(_unit(IDR, pts=0.2))
    assert not slot.empty


def test_in_band_parameter_sets_complete_the_gate():
    pipe, dec, slot = _pipeline()
    assert pipe.state is PipelineState.AWAITING_PARAMETERS
    # keyframe without parameter sets yet: discarded
    pipe.process(_unit(IDR))
    assert slot.empty
    pipe.process(_unit(SPS, PPS, pts=0.04))
    assert pipe.state is PipelineState.AWAITING_KEYFRAME
    assert dec.parameter_sets == [SPS, PPS]
    pipe.process(_unit(IDR, pts=0.08))
    assert pipe.state is PipelineState.STREAMING
    assert not slot.empty


def test_keyframe_unit_carrying_parameter_sets_streams_immediately():
    pipe, dec, slot = _pipeline()
    assert pipe.process(_unit(SPS, PPS, IDR)) is True
    assert dec.decoded == [SPS, PPS, IDR]


def test_decode_error_abandons_rest_of_unit_only():
    metrics = Metrics()
    dec = StubDecoder(Codec.H264, fail_on=b"\x41\xff")
    pipe, _, slot = _pipeline(params={"sps": SPS, "pps": PPS}, decoder=dec, metrics=metrics)
    pipe.process(_unit(IDR))
    before = slot.load()
    assert pipe.process(_unit(b"\x41\xff", P_SLICE, pts=0.04)) is False
    assert P_SLICE not in dec.decoded
    assert slot.load() is before
    assert pipe.process(_unit(P_SLICE, pts=0.08)) is True
    assert metrics.counter(DECODE_ERRORS_TOTAL) == 1
    assert metrics.counter(FRAMES_DECODED_TOTAL) == 2


def test_h265_gate_applies_too():
    params = {"vps": H265_VPS, "sps": H265_SPS, "pps": H265_PPS}
    pipe, dec, slot = _pipeline(Codec.H265, params)
    assert dec.parameter_sets == [H265_VPS, H265_SPS, H265_PPS]
    pipe.process(_unit(H265_TRAIL, codec=Codec.H265))
    assert slot.empty
    pipe.process(_unit(H265_IDR, codec=Codec.H265, pts=0.04))
    assert not slot.empty


def test_handle_packet_assembles_units_and_absorbs_continuations():
    pipe, _, slot = _pipeline(params={"sps": SPS, "pps": PPS})
    pkt = build_rtp(IDR, payload_type=96, sequence_number=1, timestamp=1000, ssrc=1, marker=False)
    assert pipe.handle_packet(pkt) is None
    tail = build_rtp(P_SLICE, payload_type=96, sequence_number=2, timestamp=1000, ssrc=1, marker=True)
    unit = pipe.handle_packet(tail)
    assert unit is not None
    assert unit.nalus == (IDR, P_SLICE)
    assert unit.pts == 0.0
    assert unit.first_rtp_timestamp == 1000
    assert not slot.empty
    # malformed payload: logged, no unit, no exception
    bad = build_rtp(bytes([25, 0]), payload_type=96, sequence_number=3, timestamp=4000, ssrc=1, marker=True)
    assert pipe.handle_packet(bad) is None


def test_close_is_idempotent():
    pipe, dec, _ = _pipeline()
    pipe.close()
    pipe.close()
    assert dec.close_calls == 1
    assert pipe.closed
    assert pipe.process(_unit(SPS, PPS, IDR)) is False
