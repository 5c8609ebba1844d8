# recognition.py
# Recognition session: camera lifecycle plus the periodic
# capture -> detect -> match -> publish pipeline.

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from config import DEGRADED_AFTER_FAILURES, DISTANCE_MAX, MATCH_THRESHOLD, TICK_PERIOD
from exceptions import DeviceUnavailable, PreconditionNotMet
from face_types import DegradedSignal, DetectedFace, FrameResult, SessionState, StatisticsSnapshot
from frame_matcher import match_frame
from in_memory_index import GalleryIndex
from result_publisher import Observer, ResultPublisher
from stats_aggregator import StatisticsAggregator

logger = logging.getLogger(__name__)


class RecognitionScheduler:
    """
    Owns one recognition session.

    ``frame_source`` must provide ``open()``, ``next_frame()`` and
    ``release()``; ``detector`` must provide ``detect(frame)`` and may
    provide ``is_ready()``.

    While recognizing, a ticker thread fires every ``period`` seconds and
    hands the tick to a single worker thread. A tick that fires while the
    previous one is still detecting is skipped, never queued, so at most one
    detection call is in flight at any time.
    """

    def __init__(
        self,
        frame_source,
        detector,
        gallery: GalleryIndex,
        publisher: Optional[ResultPublisher] = None,
        aggregator: Optional[StatisticsAggregator] = None,
        threshold: float = MATCH_THRESHOLD,
        distance_max: float = DISTANCE_MAX,
        period: float = TICK_PERIOD,
        degraded_after: int = DEGRADED_AFTER_FAILURES,
    ):
        if period <= 0:
            raise ValueError("period must be positive")
        self._source = frame_source
        self._detector = detector
        self._gallery = gallery
        self._publisher = publisher or ResultPublisher()
        self._aggregator = aggregator or StatisticsAggregator()
        self.threshold = threshold
        self.distance_max = distance_max
        self.period = period
        self.degraded_after = degraded_after

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._generation = 0
        self._ticker: Optional[threading.Thread] = None
        self._ticker_stop: Optional[threading.Event] = None
        self._worker: Optional[threading.Thread] = None
        self._work_q: queue.Queue = queue.Queue(maxsize=1)
        self._in_flight = False
        self._frame_id = 0
        self._consecutive_failures = 0
        self._degraded = False
        self._closed = False

        self.ticks = 0
        self.skipped_ticks = 0
        self.discarded_results = 0

    # ---------- Read accessors ----------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def publisher(self) -> ResultPublisher:
        return self._publisher

    @property
    def latest_statistics(self) -> Optional[StatisticsSnapshot]:
        return self._aggregator.latest

    def history(self) -> List[FrameResult]:
        return self._publisher.history()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        return self._publisher.subscribe(observer)

    # ---------- Transitions ----------

    def start_camera(self):
        with self._lock:
            if self._closed:
                raise PreconditionNotMet("session has been closed")
            if self._state is not SessionState.IDLE:
                raise PreconditionNotMet(f"start_camera requires IDLE, session is {self._state.name}")
            try:
                self._source.open()
            except DeviceUnavailable:
                raise
            except Exception as exc:
                raise DeviceUnavailable(f"frame source could not be opened: {exc}") from exc
            if self._publisher.ident is None:
                self._publisher.start()
            self._state = SessionState.CAMERA_READY
        logger.info("Camera ready")

    def stop_camera(self):
        ticker = None
        with self._lock:
            if self._state is SessionState.RECOGNIZING:
                ticker = self._halt_recognition()
            was_idle = self._state is SessionState.IDLE
            self._state = SessionState.IDLE
            if not was_idle:
                try:
                    self._source.release()
                except Exception:
                    logger.exception("Frame source release failed")
        self._join_ticker(ticker)
        if not was_idle:
            logger.info("Camera released")

    def start_recognition(self):
        with self._lock:
            if self._state is not SessionState.CAMERA_READY:
                raise PreconditionNotMet(
                    f"start_recognition requires CAMERA_READY, session is {self._state.name}"
                )
            is_ready = getattr(self._detector, "is_ready", None)
            if is_ready is not None and not is_ready():
                raise PreconditionNotMet("detector has not finished warming up")

            self._generation += 1
            self._consecutive_failures = 0
            self._degraded = False
            # Idle time before this run must not count toward the first window.
            self._aggregator.restart_window()
            self._ensure_worker()

            stop_event = threading.Event()
            ticker = threading.Thread(
                target=self._run_ticker,
                args=(self._generation, stop_event),
                name=f"recognition-ticker-{self._generation}",
                daemon=True,
            )
            self._ticker, self._ticker_stop = ticker, stop_event
            self._state = SessionState.RECOGNIZING
            ticker.start()
        logger.info(f"Recognition started (period={self.period:.3f}s, threshold={self.threshold})")

    def stop_recognition(self):
        with self._lock:
            if self._state is not SessionState.RECOGNIZING:
                raise PreconditionNotMet(
                    f"stop_recognition requires RECOGNIZING, session is {self._state.name}"
                )
            ticker = self._halt_recognition()
            self._state = SessionState.CAMERA_READY
        self._join_ticker(ticker)
        logger.info("Recognition stopped")

    def _halt_recognition(self) -> Optional[threading.Thread]:
        # Called with the lock held. Bumping the generation makes any
        # in-flight tick discard its result; the detector call itself is not
        # awaited.
        self._generation += 1
        ticker, stop_event = self._ticker, self._ticker_stop
        self._ticker = self._ticker_stop = None
        if stop_event is not None:
            stop_event.set()
        return ticker

    def _join_ticker(self, ticker: Optional[threading.Thread]):
        # Outside the lock: the ticker may be waiting on it.
        if ticker is not None and ticker is not threading.current_thread():
            ticker.join(timeout=max(1.0, self.period))

    def close(self):
        """Release every session resource. Safe to call more than once; the session cannot be restarted."""
        self.stop_camera()
        with self._lock:
            self._closed = True
            worker, self._worker = self._worker, None
        if worker is not None:
            try:
                self._work_q.put_nowait(None)
            except queue.Full:
                pass
        self._publisher.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---------- Ticker ----------

    def _ensure_worker(self):
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._run_worker, name="recognition-worker", daemon=True)
            self._worker.start()

    def _run_ticker(self, generation: int, stop_event: threading.Event):
        next_tick = time.monotonic()
        while not stop_event.is_set():
            self._tick(generation)
            self._flush_statistics()

            next_tick += self.period
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; realign instead of firing a burst of ticks.
                next_tick = time.monotonic()
                delay = 0
            if stop_event.wait(delay):
                break

    def _tick(self, generation: int):
        with self._lock:
            if generation != self._generation:
                return
            self.ticks += 1
            if self._in_flight:
                self.skipped_ticks += 1
                logger.debug("Previous tick still running, skipping")
                return
            self._in_flight = True
            self._frame_id += 1
            frame_id = self._frame_id
        self._work_q.put((generation, frame_id))

    def _flush_statistics(self):
        stats = self._aggregator.flush_if_due()
        if stats is not None:
            self._publisher.publish_statistics(stats)

    # ---------- Worker ----------

    def _run_worker(self):
        while True:
            job = self._work_q.get()
            if job is None:
                break
            generation, frame_id = job
            try:
                self._run_cycle(generation, frame_id)
            except Exception:
                logger.exception("Recognition cycle crashed")
            finally:
                with self._lock:
                    self._in_flight = False

    def _run_cycle(self, generation: int, frame_id: int):
        # The whole pass works against the snapshot active when it started,
        # whatever the index swaps in meanwhile.
        snapshot = self._gallery.snapshot
        if snapshot is None and self._gallery.refresh():
            snapshot = self._gallery.snapshot
        if snapshot is None:
            logger.warning(f"Tick {frame_id}: gallery unavailable ({self._gallery.last_error}), tick dropped")
            return

        frame = self._source.next_frame()
        if frame is None:
            logger.debug(f"Tick {frame_id}: no frame available")
            return

        try:
            detections: Sequence[DetectedFace] = self._detector.detect(frame)
        except Exception as exc:
            self._on_detection_failure(generation, exc)
            return

        result = match_frame(
            detections,
            snapshot,
            threshold=self.threshold,
            timestamp=time.time(),
            frame_id=frame_id,
            distance_max=self.distance_max,
        )

        with self._lock:
            if generation != self._generation:
                self.discarded_results += 1
                logger.debug(f"Tick {frame_id}: session stopped during detection, result discarded")
                return
            self._consecutive_failures = 0
            self._degraded = False
            self._aggregator.record(result)
            self._publisher.publish_frame(result)

        logger.debug(
            f"Tick {frame_id}: {result.detected} faces, {result.matched} matched "
            f"(gallery v{result.snapshot_version})"
        )

    def _on_detection_failure(self, generation: int, exc: Exception):
        with self._lock:
            if generation != self._generation:
                return
            self._consecutive_failures += 1
            failures = self._consecutive_failures
            logger.warning(f"Detection failed ({failures} in a row): {exc}")
            if failures >= self.degraded_after and not self._degraded:
                self._degraded = True
                signal = DegradedSignal(
                    consecutive_failures=failures,
                    last_error=str(exc),
                    timestamp=time.time(),
                )
                logger.error(f"Detection degraded after {failures} consecutive failures")
                self._publisher.publish_signal(signal)

    @property
    def degraded(self) -> bool:
        return self._degraded

    def describe(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "ticks": self.ticks,
            "skipped_ticks": self.skipped_ticks,
            "discarded_results": self.discarded_results,
            "degraded": self._degraded,
            "closed": self._closed,
        }
