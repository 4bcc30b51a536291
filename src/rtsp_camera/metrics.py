"""
Lightweight in-process metrics for rtsp-camera.

Counters (monotonic totals), gauges (latest value) and rolling-window timing
histograms. Every operation takes a lock: the RTSP reader thread, the
supervisor and subscription delivery threads all report here. `snapshot()`
returns a JSON-ready dict.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from rtsp_camera.utils.env import env_int

PACKETS_TOTAL = "rtsp_camera_rtp_packets_total"
PACKETS_LOST_TOTAL = "rtsp_camera_rtp_packets_lost_total"
RTP_ERRORS_TOTAL = "rtsp_camera_rtp_errors_total"
UNITS_TOTAL = "rtsp_camera_units_total"
UNITS_DISCARDED_TOTAL = "rtsp_camera_units_discarded_total"
FRAMES_DECODED_TOTAL = "rtsp_camera_frames_decoded_total"
DECODE_ERRORS_TOTAL = "rtsp_camera_decode_errors_total"
PASSTHROUGH_PACKETS_TOTAL = "rtsp_camera_passthrough_packets_total"
PASSTHROUGH_DROPPED_TOTAL = "rtsp_camera_passthrough_dropped_total"
SUBSCRIPTION_DROPS_TOTAL = "rtsp_camera_subscription_drops_total"
RECONNECTS_TOTAL = "rtsp_camera_reconnects_total"
RECONNECT_FAILURES_TOTAL = "rtsp_camera_reconnect_failures_total"
SUBSCRIPTIONS_GAUGE = "rtsp_camera_subscriptions"
DECODE_MS = "rtsp_camera_decode_ms"


@dataclass
class _Hist:
    window: int
    values: Deque[float] = field(default_factory=deque)
    last: float = 0.0
    count: int = 0

    def observe(self, v: float) -> None:
        self.last = float(v)
        self.values.append(self.last)
        self.count += 1

    def stats(self) -> Dict[str, float]:
        n = len(self.values)
        if n == 0:
            return {"last_ms": 0.0, "mean_ms": 0.0, "p50_ms": 0.0, "p90_ms": 0.0, "max_ms": 0.0, "count": 0}
        arr: List[float] = sorted(self.values)

        def q(p: float) -> float:
            return arr[min(max(int(round(p * (n - 1))), 0), n - 1)]

        return {
            "last_ms": self.last,
            "mean_ms": sum(arr) / n,
            "p50_ms": q(0.50),
            "p90_ms": q(0.90),
            "max_ms": arr[-1],
            "count": self.count,
        }


class Metrics:
    """Small thread-safe metrics aggregator with a JSON snapshot."""

    def __init__(self, window: Optional[int] = None) -> None:
        if window is None:
            window = env_int("RTSP_CAMERA_METRICS_WINDOW", 256)
        self._window = max(16, int(window))
        self._lock = threading.Lock()
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._hists: Dict[str, _Hist] = {}
        self._started = time.time()

    def inc(self, name: str, value: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + float(value)

    def set(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe_ms(self, name: str, value_ms: float) -> None:
        with self._lock:
            h = self._hists.get(name)
            if h is None:
                h = _Hist(window=self._window, values=deque(maxlen=self._window))
                self._hists[name] = h
            h.observe(value_ms)

    def counter(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str) -> Optional[float]:
        with self._lock:
            return self._gauges.get(name)

    def snapshot(self) -> Dict[str, object]:
        now = time.time()
        with self._lock:
            counters = {k: int(v) if float(v).is_integer() else float(v) for k, v in self._counters.items()}
            gauges = dict(self._gauges)
            hist = {k: v.stats() for k, v in self._hists.items()}
        uptime = max(1e-3, now - self._started)
        return {
            "version": "v1",
            "ts": now,
            "counters": counters,
            "gauges": gauges,
            "histograms": hist,
            "derived": {
                "fps": counters.get(FRAMES_DECODED_TOTAL, 0) / uptime,
            },
        }


__all__ = [
    "DECODE_ERRORS_TOTAL",
    "DECODE_MS",
    "FRAMES_DECODED_TOTAL",
    "Metrics",
    "PACKETS_LOST_TOTAL",
    "PACKETS_TOTAL",
    "PASSTHROUGH_DROPPED_TOTAL",
    "PASSTHROUGH_PACKETS_TOTAL",
    "RECONNECTS_TOTAL",
    "RECONNECT_FAILURES_TOTAL",
    "RTP_ERRORS_TOTAL",
    "SUBSCRIPTIONS_GAUGE",
    "SUBSCRIPTION_DROPS_TOTAL",
    "UNITS_DISCARDED_TOTAL",
    "UNITS_TOTAL",
]
