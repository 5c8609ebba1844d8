# result_publisher.py

import json
import logging
import queue
import threading
from collections import deque
from typing import Any, Callable, Dict, List, Optional, TextIO, Union

from config import HISTORY_SIZE, PUBLISH_QUEUE_SIZE
from face_types import DegradedSignal, FrameResult, StatisticsSnapshot

logger = logging.getLogger(__name__)

Event = Union[FrameResult, StatisticsSnapshot, DegradedSignal]
Observer = Callable[[Event], None]

_RECORD_TYPES = {
    FrameResult: "frame_result",
    StatisticsSnapshot: "statistics",
    DegradedSignal: "detection_degraded",
}


def to_record(event: Event) -> Dict[str, Any]:
    """JSON-encodable {type, data, timestamp} record for transports."""
    return {
        "type": _RECORD_TYPES[type(event)],
        "data": event.to_dict(),
        "timestamp": event.timestamp,
    }


class JsonLinesSink:
    """Observer writing one JSON record per line to a text stream."""

    def __init__(self, stream: TextIO):
        self._stream = stream
        self._lock = threading.Lock()

    def __call__(self, event: Event):
        line = json.dumps(to_record(event))
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


class ResultPublisher(threading.Thread):
    """
    Fans results out to observers from its own thread.

    Publishing never blocks the caller: events go through a bounded queue and
    the oldest pending event is dropped when observers fall behind.
    """

    def __init__(
        self,
        max_queue: int = PUBLISH_QUEUE_SIZE,
        history_size: int = HISTORY_SIZE,
        stop_event: Optional[threading.Event] = None,
    ):
        super().__init__(name="result-publisher", daemon=True)
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._history: deque = deque(maxlen=history_size)
        self._observers: List[Observer] = []
        self._lock = threading.Lock()
        self._stop_event = stop_event or threading.Event()
        self.dropped = 0

    # ---------- Producer side ----------

    def publish_frame(self, result: FrameResult):
        with self._lock:
            self._history.append(result)
        self._put_latest(result)

    def publish_statistics(self, stats: StatisticsSnapshot):
        self._put_latest(stats)

    def publish_signal(self, signal: DegradedSignal):
        self._put_latest(signal)

    def _put_latest(self, event: Event):
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                pass
            try:
                self._queue.get_nowait()
            except queue.Empty:
                continue
            self._queue.task_done()
            with self._lock:
                self.dropped += 1
            logger.debug("Publisher queue full, dropped oldest event")

    # ---------- Observers ----------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe():
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def run(self):
        while not self._stop_event.is_set():
            try:
                event = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            if event is None:
                self._queue.task_done()
                break

            try:
                self._dispatch(event)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: Event):
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception(f"Observer {observer!r} failed on {type(event).__name__}")

    def drain(self):
        """Block until every queued event has been dispatched."""
        self._queue.join()

    def stop(self):
        self._stop_event.set()
        self._put_latest(None)

    # ---------- History ----------

    def history(self) -> List[FrameResult]:
        with self._lock:
            return list(self._history)

    def export_history(self, path: str) -> int:
        records = [to_record(result) for result in self.history()]
        with open(path, "w") as f:
            json.dump(records, f, indent=2)
        logger.info(f"Exported {len(records)} frame results to {path}")
        return len(records)
