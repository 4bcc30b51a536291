from __future__ import annotations

import logging
import queue
import re
import socket
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import unquote, urlsplit, urlunsplit

from dpkt.rtp import RTP

from rtsp_camera.errors import ClientTerminatedError, DepacketizeError, RTSPError, RTSPStatusError
from rtsp_camera.rtp.packet import SequenceTracker, parse_rtp

from .auth import Authenticator
from .sdp import MediaDescription, SessionDescription, parse_sdp

logger = logging.getLogger(__name__)

RTSP_VERSION = "RTSP/1.0"
DEFAULT_PORTS = {"rtsp": 554, "rtsps": 322}
_MAX_HEADER_LINES = 256
_INTERLEAVED_RE = re.compile(r"interleaved=(\d+)(?:-(\d+))?")


@dataclass
class RTSPResponse:
    status_code: int
    reason: str
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        values = self.headers.get(name.lower())
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        return list(self.headers.get(name.lower(), ()))

    @property
    def cseq(self) -> Optional[int]:
        value = self.header("cseq")
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None


@dataclass
class _Track:
    media: MediaDescription
    channel: int
    callback: Optional[Callable[[RTP], None]] = None
    sequence: SequenceTracker = field(default_factory=SequenceTracker)


_Message = Union[RTSPResponse, tuple[int, bytes], None]


class RTSPClient:
    """RTSP/1.0 client receiving RTP interleaved on the control connection.

    Requests are synchronous. After PLAY a daemon reader thread owns the
    socket input: it dispatches RTP packets to the per-media callbacks and
    hands RTSP responses to the requesting thread. Once the reader stops
    (EOF, read timeout, socket error or :meth:`close`) every further request
    raises :class:`ClientTerminatedError`.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        user_agent: str = "rtsp-camera",
        on_packet_lost: Optional[Callable[[int], None]] = None,
        on_decode_error: Optional[Callable[[Exception], None]] = None,
        log_exchanges: bool = False,
    ) -> None:
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise RTSPError(f"unsupported URL scheme {parts.scheme!r}")
        if not parts.hostname:
            raise RTSPError(f"missing host in RTSP URL {url!r}")
        self.scheme = scheme
        self.host = parts.hostname
        self.port = parts.port or DEFAULT_PORTS[scheme]
        netloc = self.host if ":" not in self.host else f"[{self.host}]"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        self.url = urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))
        self._auth: Optional[Authenticator] = None
        if parts.username is not None:
            self._auth = Authenticator(unquote(parts.username), unquote(parts.password or ""))
        self.timeout = float(timeout)
        self.user_agent = user_agent
        self.on_packet_lost = on_packet_lost
        self.on_decode_error = on_decode_error
        self.log_exchanges = bool(log_exchanges)

        self._sock: Optional[socket.socket] = None
        self._rfile = None
        self._write_lock = threading.Lock()
        self._request_lock = threading.Lock()
        self._cseq = 0
        self._session_id: Optional[str] = None
        self._tracks: dict[int, _Track] = {}
        self._next_channel = 0
        self._responses: queue.Queue[Optional[RTSPResponse]] = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._playing = False
        self._closed = False
        self._error: Optional[BaseException] = None

    # -- lifecycle --

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminated(self) -> bool:
        return self._closed or self._error is not None

    def start(self) -> None:
        if self._sock is not None:
            raise RTSPError("client already started")
        logger.info("Connecting to RTSP server %s:%d", self.host, self.port)
        sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        if self.scheme == "rtsps":
            context = ssl.create_default_context()
            try:
                sock = context.wrap_socket(sock, server_hostname=self.host)
            except (ssl.SSLError, OSError):
                sock.close()
                raise
        sock.settimeout(self.timeout)
        self._sock = sock
        self._rfile = sock.makefile("rb")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        sock = self._sock
        if sock is not None:
            if self._playing and self._error is None:
                try:
                    self._send_request("TEARDOWN", self.url, {})
                except OSError:
                    logger.debug("TEARDOWN failed", exc_info=True)
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                sock.close()
            except OSError:
                logger.debug("socket close failed", exc_info=True)
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=self.timeout)
            if reader.is_alive():
                logger.warning("RTSP reader thread did not stop within %.1fs", self.timeout)
        if self._rfile is not None:
            try:
                self._rfile.close()
            except OSError:
                pass
        self._responses.put(None)
        logger.info("RTSP client for %s closed", self.url)

    # -- requests --

    def options(self) -> RTSPResponse:
        return self._request("OPTIONS", self.url)

    def describe(self) -> SessionDescription:
        res = self._request("DESCRIBE", self.url, {"Accept": "application/sdp"})
        self._raise_for_status("DESCRIBE", res)
        base = res.header("content-base") or res.header("content-location") or self.url
        description = parse_sdp(res.body.decode("utf-8", errors="replace"), base)
        if self.log_exchanges:
            for media in description.medias:
                logger.info("SDP media: %s", media.describe())
        return description

    def setup(self, description: SessionDescription, media: MediaDescription) -> int:
        """SETUP one media over TCP; returns the interleaved RTP channel."""
        channel = self._next_channel
        headers = {"Transport": f"RTP/AVP/TCP;unicast;interleaved={channel}-{channel + 1}"}
        res = self._request("SETUP", description.media_url(media), headers)
        self._raise_for_status("SETUP", res)
        transport = res.header("transport") or ""
        match = _INTERLEAVED_RE.search(transport)
        if match:
            channel = int(match.group(1))
        elif transport and "tcp" not in transport.lower():
            raise RTSPError(f"server refused TCP transport: {transport!r}")
        session = res.header("session")
        if session:
            self._session_id = session.split(";")[0].strip()
        self._tracks[channel] = _Track(media=media, channel=channel)
        self._next_channel = max(self._next_channel, channel + 2)
        return channel

    def on_packet_rtp(self, media: MediaDescription, callback: Callable[[RTP], None]) -> None:
        for track in self._tracks.values():
            if track.media is media:
                track.callback = callback
                return
        raise RTSPError("media has not been set up")

    def play(self) -> RTSPResponse:
        if not self._tracks:
            raise RTSPError("PLAY without any SETUP media")
        res = self._request("PLAY", self.url, {"Range": "npt=0.000-"})
        self._raise_for_status("PLAY", res)
        self._playing = True
        self._reader = threading.Thread(target=self._read_loop, name="rtsp-reader", daemon=True)
        self._reader.start()
        return res

    @staticmethod
    def _raise_for_status(method: str, res: RTSPResponse) -> None:
        if res.status_code != 200:
            raise RTSPStatusError(method, res.status_code, res.reason)

    def _request(self, method: str, url: str, headers: Optional[dict[str, str]] = None) -> RTSPResponse:
        with self._request_lock:
            res = self._exchange(method, url, dict(headers or {}))
            if res.status_code == 401 and self._auth is not None:
                if self._auth.update(res.header_values("www-authenticate")):
                    res = self._exchange(method, url, dict(headers or {}))
            return res

    def _exchange(self, method: str, url: str, headers: dict[str, str]) -> RTSPResponse:
        if self.terminated:
            raise ClientTerminatedError("RTSP client terminated") from self._error
        if self._sock is None:
            raise RTSPError("client not started")
        cseq = self._send_request(method, url, headers)
        if self._reader is not None:
            return self._await_response(cseq)
        while True:
            msg = self._read_message()
            if isinstance(msg, RTSPResponse):
                if msg.cseq in (None, cseq):
                    return msg
                logger.debug("ignoring RTSP response with CSeq %s", msg.cseq)
            elif msg is None:
                raise EOFError("RTSP connection closed by server")

    def _send_request(self, method: str, url: str, headers: dict[str, str]) -> int:
        assert self._sock is not None
        with self._write_lock:
            self._cseq += 1
            cseq = self._cseq
            lines = [f"{method} {url} {RTSP_VERSION}", f"CSeq: {cseq}", f"User-Agent: {self.user_agent}"]
            if self._session_id is not None:
                lines.append(f"Session: {self._session_id}")
            if self._auth is not None and self._auth.ready:
                authorization = self._auth.header(method, url)
                if authorization:
                    lines.append(f"Authorization: {authorization}")
            lines.extend(f"{k}: {v}" for k, v in headers.items())
            data = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
            if self.log_exchanges:
                logger.info("RTSP >> %s %s (CSeq %d)", method, url, cseq)
            self._sock.sendall(data)
        return cseq

    def _await_response(self, cseq: int) -> RTSPResponse:
        while True:
            try:
                res = self._responses.get(timeout=self.timeout)
            except queue.Empty:
                raise TimeoutError(f"no RTSP response within {self.timeout:.1f}s") from None
            if res is None:
                # reader exited; keep the sentinel for other waiters
                self._responses.put(None)
                raise ClientTerminatedError("RTSP client terminated") from self._error
            if res.cseq in (None, cseq):
                return res
            logger.debug("ignoring RTSP response with CSeq %s", res.cseq)

    # -- input --

    def _read_exact(self, n: int) -> bytes:
        data = self._rfile.read(n)
        if data is None or len(data) < n:
            raise EOFError("RTSP connection closed by server")
        return data

    def _read_message(self) -> _Message:
        """Read one RTSP message or interleaved frame; None on clean EOF."""
        first = self._rfile.read(1)
        if not first:
            return None
        if first == b"$":
            header = self._read_exact(3)
            channel = header[0]
            length = int.from_bytes(header[1:3], "big")
            return channel, self._read_exact(length)

        status_line = (first + self._rfile.readline()).decode("utf-8", errors="replace").strip()
        headers: dict[str, list[str]] = {}
        for _ in range(_MAX_HEADER_LINES):
            raw = self._rfile.readline()
            if not raw:
                raise EOFError("RTSP connection closed by server")
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                break
            name, _, value = line.partition(":")
            headers.setdefault(name.strip().lower(), []).append(value.strip())
        else:
            raise RTSPError("too many RTSP header lines")
        length = 0
        if "content-length" in headers:
            try:
                length = int(headers["content-length"][0])
            except ValueError as exc:
                raise RTSPError(f"invalid Content-Length {headers['content-length'][0]!r}") from exc
        body = self._read_exact(length) if length > 0 else b""

        if not status_line.startswith("RTSP/"):
            # server-to-client request (e.g. ANNOUNCE); not answered
            logger.debug("ignoring RTSP request from server: %s", status_line)
            return self._read_message()
        parts = status_line.split(" ", 2)
        try:
            status = int(parts[1])
        except (IndexError, ValueError) as exc:
            raise RTSPError(f"invalid RTSP status line {status_line!r}") from exc
        reason = parts[2] if len(parts) > 2 else ""
        if self.log_exchanges:
            logger.info("RTSP << %d %s", status, reason)
        return RTSPResponse(status_code=status, reason=reason, headers=headers, body=body)

    def _read_loop(self) -> None:
        try:
            while not self._closed:
                msg = self._read_message()
                if msg is None:
                    raise EOFError("RTSP connection closed by server")
                if isinstance(msg, RTSPResponse):
                    self._responses.put(msg)
                    continue
                self._dispatch(*msg)
        except Exception as exc:
            if not self._closed:
                if isinstance(exc, (EOFError, OSError)):
                    logger.info("RTSP connection to %s lost (%s)", self.url, str(exc) or exc.__class__.__name__)
                else:
                    logger.exception("RTSP reader failed")
                self._error = exc
        finally:
            self._responses.put(None)

    def _dispatch(self, channel: int, data: bytes) -> None:
        track = self._tracks.get(channel)
        if track is None:
            # RTCP (odd channels) or a track we did not set up
            return
        try:
            try:
                pkt = parse_rtp(data)
            except DepacketizeError as exc:
                if self.on_decode_error is not None:
                    self.on_decode_error(exc)
                return
            lost = track.sequence.lost_before(pkt.seq)
            if lost and self.on_packet_lost is not None:
                self.on_packet_lost(lost)
            if track.callback is not None:
                track.callback(pkt)
        except Exception:
            logger.exception("RTP packet callback failed")


__all__ = ["RTSPClient", "RTSPResponse"]
