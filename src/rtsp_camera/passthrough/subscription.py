"""One passthrough consumer: a bounded FIFO drained by its own thread."""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Optional

from dpkt.rtp import RTP

from rtsp_camera.errors import QueueFullError

logger = logging.getLogger(__name__)

PacketsCallback = Callable[[list[RTP]], None]
ErrorHandler = Callable[[Exception], None]

_POLL_INTERVAL_S = 0.1


class SubscriptionState(str, Enum):
    STARTING = "starting"
    ACTIVE = "active"
    CLOSED = "closed"


def _log_error(exc: Exception) -> None:
    logger.error("stream subscription hit error: %s", exc)


def _copy_batch(packets: Sequence[RTP]) -> list[RTP]:
    # each subscriber owns its packets; callbacks may rewrite headers
    return [RTP(bytes(pkt)) for pkt in packets]


class StreamSubscription:
    """Delivers packet batches to ``callback`` without blocking the producer.

    ``publish`` only ever does a non-blocking put. When the queue is at
    capacity the batch is dropped and ``on_error`` receives a
    :class:`QueueFullError`. Queued batches are private copies, so one
    subscriber rewriting headers never affects another. Callback exceptions
    also go to ``on_error``; they never stop delivery of later batches.
    """

    def __init__(
        self,
        queue_size: int,
        callback: PacketsCallback,
        on_error: Optional[ErrorHandler] = None,
        *,
        log_drops: bool = False,
    ) -> None:
        if int(queue_size) < 1:
            raise ValueError("queue_size must be >= 1")
        self.id = uuid.uuid4()
        self.queue_size = int(queue_size)
        self._callback = callback
        self._on_error = on_error or _log_error
        self._log_drops = bool(log_drops)
        self._queue: queue.Queue[list[RTP]] = queue.Queue(maxsize=self.queue_size)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.state = SubscriptionState.STARTING
        self.dropped = 0
        self.delivered = 0

    def start(self) -> None:
        if self.state is not SubscriptionState.STARTING:
            raise RuntimeError(f"subscription {self.id} already {self.state.value}")
        self._thread = threading.Thread(
            target=self._run,
            name=f"rtp-subscription-{str(self.id)[:8]}",
            daemon=True,
        )
        self.state = SubscriptionState.ACTIVE
        self._thread.start()

    def publish(self, packets: Sequence[RTP]) -> bool:
        """Queue one batch; False when it was dropped."""
        if self.state is SubscriptionState.CLOSED:
            return False
        try:
            self._queue.put_nowait(_copy_batch(packets))
        except queue.Full:
            self.dropped += 1
            if self._log_drops:
                logger.info("subscription %s queue full (%d); batch dropped", self.id, self.queue_size)
            self._report(QueueFullError(f"subscription {self.id} queue is full"))
            return False
        return True

    def _report(self, exc: Exception) -> None:
        try:
            self._on_error(exc)
        except Exception:
            logger.debug("subscription %s error handler failed", self.id, exc_info=True)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                packets = self._queue.get(timeout=_POLL_INTERVAL_S)
            except queue.Empty:
                continue
            if self._stop.is_set():
                break
            try:
                self._callback(packets)
                self.delivered += 1
            except Exception as exc:
                self._report(exc)

    def close(self, timeout: Optional[float] = 2.0) -> None:
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("subscription %s delivery thread still running after close", self.id)
        logger.debug("subscription %s closed (delivered=%d dropped=%d)", self.id, self.delivered, self.dropped)


__all__ = ["ErrorHandler", "PacketsCallback", "StreamSubscription", "SubscriptionState"]
