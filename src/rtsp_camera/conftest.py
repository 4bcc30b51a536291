"""Shared fakes: a scripted decoder and an in-memory RTSP client."""

from __future__ import annotations

import numpy as np
import pytest

from rtsp_camera.codec.nalu import Codec, is_vcl_nal
from rtsp_camera.errors import ClientTerminatedError, DecodeError
from rtsp_camera.rtsp.client import RTSPResponse
from rtsp_camera.rtsp.sdp import parse_sdp

SDP_H264 = """v=0
s=Fake
m=video 0 RTP/AVP 96
a=rtpmap:96 H264/90000
a=fmtp:96 packetization-mode=1;sprop-parameter-sets=Z0IAHqs=,aM44gA==
a=control:trackID=0
"""

SDP_H265 = """v=0
s=Fake
m=video 0 RTP/AVP 97
a=rtpmap:97 H265/90000
a=fmtp:97 sprop-vps=QAEMAf//;sprop-sps=QgEBAWA=;sprop-pps=RAHBcrRiQA==
a=control:trackID=0
"""

SDP_MJPEG = """v=0
s=Fake
m=video 0 RTP/AVP 26
a=rtpmap:26 JPEG/90000
a=control:trackID=0
"""


class StubDecoder:
    """Returns a tiny image for every VCL NAL unit; fails on `fail_on`."""

    def __init__(self, codec: Codec = Codec.H264, fail_on: bytes | None = None) -> None:
        self.codec = codec
        self.fail_on = fail_on
        self.parameter_sets: list[bytes] = []
        self.decoded: list[bytes] = []
        self.close_calls = 0

    def feed_parameter_set(self, nalu: bytes) -> None:
        self.parameter_sets.append(nalu)

    def decode(self, nalu: bytes):
        if self.fail_on is not None and nalu == self.fail_on:
            raise DecodeError("corrupt slice")
        self.decoded.append(nalu)
        if is_vcl_nal(nalu, self.codec):
            return np.full((4, 6, 3), len(self.decoded), dtype=np.uint8)
        return None

    def close(self) -> None:
        self.close_calls += 1


class FakeRTSPClient:
    """Stands in for RTSPClient: serves a fixed SDP and records calls."""

    def __init__(self, url, *, sdp=SDP_H264, options_status=200, options_error=None, start_error=None, **kwargs):
        self.url = url
        self.sdp = sdp
        self.options_status = options_status
        self.options_error = options_error
        self.start_error = start_error
        self.kwargs = kwargs
        self.calls: list[str] = []
        self.callback = None
        self.closed = False

    def start(self):
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error

    def describe(self):
        self.calls.append("describe")
        return parse_sdp(self.sdp, self.url)

    def setup(self, description, media):
        self.calls.append("setup")
        return 0

    def on_packet_rtp(self, media, callback):
        self.callback = callback

    def play(self):
        self.calls.append("play")
        return RTSPResponse(200, "OK")

    def options(self):
        self.calls.append("options")
        if self.closed:
            raise ClientTerminatedError("closed")
        if self.options_error is not None:
            raise self.options_error
        return RTSPResponse(self.options_status, "OK" if self.options_status == 200 else "Error")

    def close(self):
        self.calls.append("close")
        self.closed = True


class ClientFactory:
    """Callable factory handing out FakeRTSPClients; `configs` applies per call in order."""

    def __init__(self, *configs: dict) -> None:
        self.configs = list(configs)
        self.clients: list[FakeRTSPClient] = []

    def __call__(self, url, **kwargs):
        overrides = self.configs.pop(0) if self.configs else {}
        client = FakeRTSPClient(url, **{**kwargs, **overrides})
        self.clients.append(client)
        return client


class DecoderFactory:
    def __init__(self) -> None:
        self.decoders: list[StubDecoder] = []

    def __call__(self, codec: Codec) -> StubDecoder:
        dec = StubDecoder(codec)
        self.decoders.append(dec)
        return dec


@pytest.fixture
def decoder_factory() -> DecoderFactory:
    return DecoderFactory()


@pytest.fixture
def make_client_factory():
    return ClientFactory
