"""Round trip through FFmpeg: libx264 encode -> H264Decoder (skipped without PyAV/libx264)."""

from fractions import Fraction

import numpy as np
import pytest

av = pytest.importorskip("av")

from rtsp_camera.codec.decoders import H264Decoder, H265Decoder, new_decoder  # noqa: E402
from rtsp_camera.codec.nalu import Codec  # noqa: E402
from rtsp_camera.errors import DecodeError  # noqa: E402


def _split_annexb(data: bytes) -> list[bytes]:
    # libx264 output uses 3 and 4 byte start codes; NAL units never end in 0x00
    return [n.rstrip(b"\x00") for n in data.split(b"\x00\x00\x01") if n.strip(b"\x00")]


def _encode_h264(frames: int = 5, width: int = 64, height: int = 48) -> list[list[bytes]]:
    try:
        enc = av.CodecContext.create("libx264", "w")
    except Exception as exc:  # codec missing from this FFmpeg build
        pytest.skip(f"libx264 unavailable: {exc}")
    enc.width = width
    enc.height = height
    enc.pix_fmt = "yuv420p"
    enc.time_base = Fraction(1, 90000)
    enc.framerate = Fraction(30, 1)
    enc.options = {"preset": "ultrafast", "tune": "zerolatency"}
    units: list[list[bytes]] = []
    for i in range(frames):
        img = np.full((height, width, 3), (i * 40) % 255, dtype=np.uint8)
        frame = av.VideoFrame.from_ndarray(img, format="rgb24").reformat(format="yuv420p")
        frame.pts = i * 3000
        for pkt in enc.encode(frame):
            units.append(_split_annexb(bytes(pkt)))
    for pkt in enc.encode(None):
        units.append(_split_annexb(bytes(pkt)))
    return units


def test_h264_decoder_produces_rgb_frames():
    units = _encode_h264()
    dec = H264Decoder()
    images = []
    for nalus in units:
        for nalu in nalus:
            image = dec.decode(nalu)
            if image is not None:
                images.append(image)
    assert images, "decoder produced no frames"
    assert images[-1].shape == (48, 64, 3)
    assert images[-1].dtype == np.uint8
    dec.close()
    assert dec.closed
    with pytest.raises(DecodeError):
        dec.decode(units[0][0])


def test_new_decoder_selects_codec():
    assert isinstance(new_decoder(Codec.H264), H264Decoder)
    assert isinstance(new_decoder(Codec.H265), H265Decoder)
