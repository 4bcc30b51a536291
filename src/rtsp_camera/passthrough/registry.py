from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Optional

from dpkt.rtp import RTP

from rtsp_camera import metrics as m
from rtsp_camera.errors import PassthroughNotEnabledError, SubscriptionNotFoundError
from rtsp_camera.utils.rwlock import ReadWriteLock

from .subscription import ErrorHandler, PacketsCallback, StreamSubscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Live passthrough subscriptions keyed by id.

    Fan-out (:meth:`publish`) holds the read side of the lock so it can run
    concurrently with itself; subscribe/unsubscribe take the write side. The
    registry outlives any single RTSP session.
    """

    def __init__(
        self,
        passthrough_enabled: bool,
        *,
        log_drops: bool = False,
        metrics: Optional[m.Metrics] = None,
    ) -> None:
        self.passthrough_enabled = bool(passthrough_enabled)
        self._log_drops = bool(log_drops)
        self._metrics = metrics
        self._lock = ReadWriteLock()
        self._subs: dict[uuid.UUID, StreamSubscription] = {}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._subs)

    def __contains__(self, sub_id: object) -> bool:
        with self._lock.read():
            return sub_id in self._subs

    @property
    def has_subscribers(self) -> bool:
        with self._lock.read():
            return bool(self._subs)

    def ids(self) -> list[uuid.UUID]:
        with self._lock.read():
            return list(self._subs)

    def subscribe(
        self,
        queue_size: int,
        callback: PacketsCallback,
        on_error: Optional[ErrorHandler] = None,
    ) -> uuid.UUID:
        if not self.passthrough_enabled:
            raise PassthroughNotEnabledError()
        sub = StreamSubscription(queue_size, callback, on_error, log_drops=self._log_drops)
        with self._lock.write():
            self._subs[sub.id] = sub
            sub.start()
            count = len(self._subs)
        self._set_gauge(count)
        logger.info("passthrough subscription %s added (queue=%d, total=%d)", sub.id, queue_size, count)
        return sub.id

    def unsubscribe(self, sub_id: uuid.UUID) -> None:
        with self._lock.write():
            sub = self._subs.pop(sub_id, None)
            count = len(self._subs)
        if sub is None:
            raise SubscriptionNotFoundError(f"id not found: {sub_id}")
        sub.close()
        self._set_gauge(count)
        logger.info("passthrough subscription %s removed (total=%d)", sub_id, count)

    def unsubscribe_all(self) -> None:
        with self._lock.write():
            subs = list(self._subs.values())
            self._subs.clear()
        for sub in subs:
            sub.close()
        self._set_gauge(0)
        if subs:
            logger.info("closed %d passthrough subscriptions", len(subs))

    def publish(self, packets: Sequence[RTP]) -> int:
        """Hand one batch to every subscription; returns how many accepted it."""
        if not packets:
            return 0
        accepted = 0
        dropped = 0
        with self._lock.read():
            for sub in self._subs.values():
                if sub.publish(packets):
                    accepted += 1
                else:
                    dropped += 1
        if dropped and self._metrics is not None:
            self._metrics.inc(m.SUBSCRIPTION_DROPS_TOTAL, dropped)
        return accepted

    def _set_gauge(self, count: int) -> None:
        if self._metrics is not None:
            self._metrics.set(m.SUBSCRIPTIONS_GAUGE, count)


__all__ = ["SubscriptionRegistry"]
