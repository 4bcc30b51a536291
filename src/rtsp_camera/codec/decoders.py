"""
Raw-frame decoders over PyAV (FFmpeg) for H.264 and H.265.

Each decoder accepts one NAL unit at a time, exactly as the depacketizers emit
them, and yields an RGB ``numpy`` array whenever FFmpeg completes a picture.
PyAV is imported lazily so the rest of the package can be used (and tested)
without it.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import numpy as np

from rtsp_camera.errors import DecodeError

from .nalu import Codec, to_annexb

logger = logging.getLogger(__name__)


class FrameDecoder(Protocol):
    """Capability set the decode pipeline needs from a codec backend."""

    codec: Codec

    def feed_parameter_set(self, nalu: bytes) -> None: ...

    def decode(self, nalu: bytes) -> Optional[np.ndarray]: ...

    def close(self) -> None: ...


class _PyAVDecoder:
    """Thin wrapper over a PyAV decoding context producing RGB arrays."""

    codec: Codec
    ffmpeg_name: str

    def __init__(self, pixfmt: str = 'rgb24') -> None:
        import av  # local import to avoid hard dep at import time

        self._ctx = av.CodecContext.create(self.ffmpeg_name, 'r')
        self.pixfmt = pixfmt if pixfmt in {'rgb24', 'bgr24'} else 'rgb24'
        self._logged_first = False

    @property
    def closed(self) -> bool:
        return self._ctx is None

    def feed_parameter_set(self, nalu: bytes) -> None:
        # Parameter sets never complete a picture; errors here only mean the
        # SDP carried something FFmpeg dislikes, and in-band sets may follow.
        try:
            self.decode(nalu)
        except DecodeError:
            logger.debug("%s: rejected out-of-band parameter set", self.codec.value, exc_info=True)

    def decode(self, nalu: bytes) -> Optional[np.ndarray]:
        import av
        from av.error import FFmpegError

        if self._ctx is None:
            raise DecodeError(f"{self.codec.value} decoder is closed")
        try:
            frames = self._ctx.decode(av.Packet(to_annexb(nalu)))
        except FFmpegError as exc:
            raise DecodeError(f"{self.codec.value} decode failed: {exc}") from exc
        image: Optional[np.ndarray] = None
        for frame in frames or []:
            image = frame.to_ndarray(format=self.pixfmt)
        if image is not None and not self._logged_first:
            h, w = image.shape[:2]
            logger.info("%s decoder producing %s frames (%dx%d)", self.codec.value, self.pixfmt, w, h)
            self._logged_first = True
        return image

    def close(self) -> None:
        self._ctx = None


class H264Decoder(_PyAVDecoder):
    codec = Codec.H264
    ffmpeg_name = 'h264'


class H265Decoder(_PyAVDecoder):
    codec = Codec.H265
    ffmpeg_name = 'hevc'


def new_decoder(codec: Codec) -> FrameDecoder:
    if codec is Codec.H265:
        return H265Decoder()
    return H264Decoder()


__all__ = ["FrameDecoder", "H264Decoder", "H265Decoder", "new_decoder"]
