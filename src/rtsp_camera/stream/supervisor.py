from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional

from rtsp_camera import metrics as m
from rtsp_camera.errors import ClientTerminatedError

from .session import StreamSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], StreamSession]

# OPTIONS failures that mean the connection itself is gone
CONNECTION_ERRORS = (
    ClientTerminatedError,
    EOFError,
    BrokenPipeError,
    ConnectionRefusedError,
    ConnectionResetError,
)


class ConnectionSupervisor:
    """Owns the active :class:`StreamSession` and replaces it when it fails.

    A daemon thread probes the session with OPTIONS every ``interval_s``
    seconds. Replacement always closes the old session before the new one is
    connected, and ``_lock`` keeps a reconnect from racing teardown.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_s: float = 5.0,
        stop_event: Optional[threading.Event] = None,
        metrics: Optional[m.Metrics] = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._session_factory = session_factory
        self.interval_s = float(interval_s)
        self._stop = stop_event or threading.Event()
        self._metrics = metrics
        self._lock = threading.Lock()
        self._session: Optional[StreamSession] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def session(self) -> Optional[StreamSession]:
        return self._session

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    # -- session replacement --

    def connect(self) -> None:
        """Build the first session; errors propagate to the caller."""
        with self._lock:
            self._replace_locked()

    def reconnect(self) -> bool:
        """Close the current session and try to build a new one."""
        with self._lock:
            if self._stop.is_set():
                return False
            try:
                self._replace_locked()
            except Exception as exc:
                logger.warning("cannot reconnect to rtsp server: %s", exc)
                if self._metrics is not None:
                    self._metrics.inc(m.RECONNECT_FAILURES_TOTAL)
                return False
        if self._metrics is not None:
            self._metrics.inc(m.RECONNECTS_TOTAL)
        logger.info("reconnected to rtsp server %s", self._session.address if self._session else "?")
        return True

    def _replace_locked(self) -> None:
        self._close_locked()
        session = self._session_factory()
        session.connect()
        self._session = session

    def close_session(self) -> None:
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()

    # -- health --

    def is_healthy(self) -> bool:
        session = self._session
        if session is None:
            return False
        try:
            res = session.probe()
        except CONNECTION_ERRORS as exc:
            logger.warning(
                "The rtsp client encountered an error, trying to reconnect (url=%s, error=%s)",
                session.address,
                str(exc) or exc.__class__.__name__,
            )
            return False
        except Exception:
            # timeouts and malformed replies keep the current session
            logger.debug("OPTIONS probe failed", exc_info=True)
            return True
        if res.status_code != 200:
            logger.warning(
                "The rtsp server responded with non-OK status (url=%s, status=%d)",
                session.address,
                res.status_code,
            )
            return False
        return True

    def tick(self) -> None:
        if not self.is_healthy():
            self.reconnect()

    # -- thread --

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("supervisor already started")
        self._thread = threading.Thread(target=self._run, name="rtsp-supervisor", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.tick()
            except Exception:
                logger.exception("supervisor tick failed")

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("supervisor thread did not stop within %.1fs", timeout or 0.0)


__all__ = ["CONNECTION_ERRORS", "ConnectionSupervisor", "SessionFactory"]
