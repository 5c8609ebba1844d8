# stats_aggregator.py
# Rolling frame-rate and match-ratio counters over a fixed time window.

import logging
import threading
import time
from typing import Callable, Optional

from config import STATS_WINDOW
from face_types import FrameResult, StatisticsSnapshot

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    def __init__(self, window: float = STATS_WINDOW, clock: Callable[[], float] = time.monotonic):
        if window <= 0:
            raise ValueError("window must be positive")
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._total_recognitions = 0
        self._latest: Optional[StatisticsSnapshot] = None
        self._reset_window(clock())

    def _reset_window(self, now: float):
        self._window_start = now
        self._frame_count = 0
        self._total_detected = 0
        self._total_matched = 0

    @property
    def latest(self) -> Optional[StatisticsSnapshot]:
        return self._latest

    @property
    def total_recognitions(self) -> int:
        return self._total_recognitions

    def record(self, frame_result: FrameResult):
        with self._lock:
            self._frame_count += 1
            self._total_detected += frame_result.detected
            self._total_matched += frame_result.matched

    def flush_if_due(self, now: Optional[float] = None) -> Optional[StatisticsSnapshot]:
        """Close the window if it has elapsed and return the new snapshot."""
        if now is None:
            now = self._clock()
        with self._lock:
            elapsed = now - self._window_start
            if elapsed < self.window:
                return None

            frame_rate = self._frame_count / elapsed if elapsed > 0 else 0.0
            if self._total_detected:
                match_ratio = self._total_matched / self._total_detected
            else:
                match_ratio = 0.0
            self._total_recognitions += self._total_matched

            snapshot = StatisticsSnapshot(
                timestamp=time.time(),
                window_seconds=elapsed,
                frame_rate=frame_rate,
                detected=self._total_detected,
                matched=self._total_matched,
                match_ratio=match_ratio,
                total_recognitions=self._total_recognitions,
            )
            self._latest = snapshot
            self._reset_window(now)

        logger.debug(
            f"Stats: {frame_rate:.2f} fps, {snapshot.matched}/{snapshot.detected} matched, "
            f"{snapshot.total_recognitions} total"
        )
        return snapshot

    def restart_window(self, now: Optional[float] = None):
        """Discard the partial window and start a new one; lifetime totals are kept."""
        if now is None:
            now = self._clock()
        with self._lock:
            self._reset_window(now)

    def reset(self):
        with self._lock:
            self._total_recognitions = 0
            self._latest = None
            self._reset_window(self._clock())
