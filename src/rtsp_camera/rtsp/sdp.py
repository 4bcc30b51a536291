"""Minimal SDP (RFC 8866) reader for RTSP DESCRIBE responses."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from rtsp_camera.codec.nalu import Codec, find_parameter_sets
from rtsp_camera.errors import RTSPError

logger = logging.getLogger(__name__)

_ENCODING_CODECS = {"H264": Codec.H264, "H265": Codec.H265, "HEVC": Codec.H265}


@dataclass(frozen=True)
class MediaFormat:
    """One payload type of a media section (``rtpmap`` + ``fmtp``)."""

    payload_type: int
    encoding: str = ""
    clock_rate: int = 90000
    fmtp: Mapping[str, str] = field(default_factory=dict)

    @property
    def codec(self) -> Optional[Codec]:
        return _ENCODING_CODECS.get(self.encoding.upper())

    def parameter_sets(self) -> dict[str, bytes]:
        """Decode the out-of-band parameter sets advertised in ``fmtp``."""
        codec = self.codec
        if codec is Codec.H264:
            raw = self.fmtp.get("sprop-parameter-sets", "")
            nalus = [_b64(part) for part in raw.split(",") if part.strip()]
            return find_parameter_sets([n for n in nalus if n], Codec.H264)
        if codec is Codec.H265:
            out: dict[str, bytes] = {}
            for name in ("vps", "sps", "pps"):
                value = _b64(self.fmtp.get(f"sprop-{name}", ""))
                if value:
                    out[name] = value
            return out
        return {}


@dataclass(frozen=True)
class MediaDescription:
    media_type: str
    control: str = ""
    formats: tuple[MediaFormat, ...] = ()

    def describe(self) -> str:
        encodings = ", ".join(f"{f.payload_type}/{f.encoding or '?'}" for f in self.formats)
        return f"{self.media_type} [{encodings}] control={self.control or '*'}"


@dataclass(frozen=True)
class SessionDescription:
    base_url: str
    medias: tuple[MediaDescription, ...] = ()

    def find_format(self, codec: Codec) -> Optional[tuple[MediaDescription, MediaFormat]]:
        for media in self.medias:
            if media.media_type != "video":
                continue
            for fmt in media.formats:
                if fmt.codec is codec:
                    return media, fmt
        return None

    def media_url(self, media: MediaDescription) -> str:
        control = media.control
        if not control or control == "*":
            return self.base_url
        if "://" in control:
            return control
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        return base + control.lstrip("/")


def _b64(value: str) -> bytes:
    value = value.strip()
    if not value:
        return b""
    try:
        return base64.b64decode(value + "=" * (-len(value) % 4), validate=False)
    except (binascii.Error, ValueError):
        logger.warning("ignoring malformed base64 parameter set %r", value)
        return b""


def _parse_fmtp(value: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in value.split(";"):
        item = item.strip()
        if not item:
            continue
        key, _, val = item.partition("=")
        params[key.strip().lower()] = val.strip()
    return params


def parse_sdp(text: str, base_url: str) -> SessionDescription:
    """Parse the media sections of an SDP body.

    Only what negotiation needs is kept: media type, control attribute and,
    per payload type, the rtpmap encoding/clock rate and fmtp parameters.
    """

    medias: list[MediaDescription] = []
    current: Optional[dict] = None

    def _close_current() -> None:
        if current is None:
            return
        formats = tuple(
            MediaFormat(
                payload_type=pt,
                encoding=current["rtpmap"].get(pt, ("", 90000))[0],
                clock_rate=current["rtpmap"].get(pt, ("", 90000))[1],
                fmtp=current["fmtp"].get(pt, {}),
            )
            for pt in current["payload_types"]
        )
        medias.append(MediaDescription(current["type"], current["control"], formats))

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if len(line) < 2 or line[1] != "=":
            continue
        kind, value = line[0], line[2:]
        if kind == "m":
            _close_current()
            parts = value.split()
            if len(parts) < 4:
                raise RTSPError(f"invalid SDP media line {line!r}")
            payload_types = []
            for token in parts[3:]:
                try:
                    payload_types.append(int(token))
                except ValueError:
                    continue
            current = {"type": parts[0], "control": "", "payload_types": payload_types, "rtpmap": {}, "fmtp": {}}
            continue
        if kind != "a" or current is None:
            continue
        name, _, attr = value.partition(":")
        if name == "control":
            current["control"] = attr.strip()
        elif name == "rtpmap":
            pt_str, _, spec = attr.partition(" ")
            enc, _, rest = spec.partition("/")
            clock = rest.split("/")[0]
            try:
                current["rtpmap"][int(pt_str)] = (enc.strip(), int(clock) if clock else 90000)
            except ValueError:
                logger.debug("ignoring malformed rtpmap %r", attr)
        elif name == "fmtp":
            pt_str, _, params = attr.partition(" ")
            try:
                current["fmtp"][int(pt_str)] = _parse_fmtp(params)
            except ValueError:
                logger.debug("ignoring malformed fmtp %r", attr)
    _close_current()
    return SessionDescription(base_url=base_url, medias=tuple(medias))


__all__ = ["MediaDescription", "MediaFormat", "SessionDescription", "parse_sdp"]
