# camera_utils.py
# Camera utilities

import logging
import threading
from typing import List, Optional

import cv2
import numpy as np

from config import CAMERA_INDEX, FRAME_HEIGHT, FRAME_WIDTH
from exceptions import DeviceUnavailable

logger = logging.getLogger(__name__)


def list_available_cameras(max_index: int = 5) -> List[int]:
    """Device indices in ``0..max_index`` that cv2 can open."""
    found = []
    for index in range(max_index + 1):
        cap = cv2.VideoCapture(index)
        try:
            if cap.isOpened():
                found.append(index)
        finally:
            cap.release()
    logger.debug(f"Probed {max_index + 1} camera indices, found {found}")
    return found


class CameraFrameSource:
    """Frame source backed by cv2.VideoCapture, a device index or a video file."""

    def __init__(self, index=CAMERA_INDEX, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT):
        self.index = index
        self.width = width
        self.height = height
        self._cap = None
        self._lock = threading.Lock()

    def open(self):
        with self._lock:
            if self._cap is not None:
                return
            cap = cv2.VideoCapture(self.index)
            if not cap.isOpened():
                cap.release()
                raise DeviceUnavailable(f"Could not open camera {self.index!r}")
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._cap = cap
        logger.info(f"Camera {self.index!r} opened")

    def next_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cap is None:
                return None
            ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def release(self):
        with self._lock:
            cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.info(f"Camera {self.index!r} released")
