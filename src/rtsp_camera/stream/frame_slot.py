"""Single-image handoff between the decode path and polling consumers."""

from __future__ import annotations

from typing import Optional

import numpy as np

from rtsp_camera.errors import NoFrameYetError


class FrameSlot:
    """Holds the most recent decoded image.

    The writer (RTSP reader thread) replaces the reference in one assignment
    and readers take the current reference, so no lock is needed: a reader
    sees either the previous or the new array, never a partial one. Stored
    arrays must not be mutated afterwards.
    """

    def __init__(self) -> None:
        self._image: Optional[np.ndarray] = None

    def store(self, image: np.ndarray) -> None:
        self._image = image

    def latest(self) -> Optional[np.ndarray]:
        return self._image

    def load(self) -> np.ndarray:
        image = self._image
        if image is None:
            raise NoFrameYetError()
        return image

    @property
    def empty(self) -> bool:
        return self._image is None


__all__ = ["FrameSlot"]
