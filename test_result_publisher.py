# test_result_publisher.py
"""Tests for the ResultPublisher class."""

import io
import json
import os
import shutil
import tempfile
import threading
import unittest

from face_types import DegradedSignal, FrameResult, StatisticsSnapshot
from result_publisher import JsonLinesSink, ResultPublisher, to_record


def make_frame(frame_id):
    return FrameResult(timestamp=1000.0 + frame_id, matches=(), snapshot_version=1, frame_id=frame_id)


def make_stats():
    return StatisticsSnapshot(
        timestamp=2000.0,
        window_seconds=1.0,
        frame_rate=2.0,
        detected=3,
        matched=1,
        match_ratio=1 / 3,
        total_recognitions=5,
    )


class TestResultPublisher(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.stop_event = threading.Event()
        self.publisher = ResultPublisher(max_queue=8, history_size=5, stop_event=self.stop_event)
        self.received = []
        self.publisher.subscribe(self.received.append)

    def tearDown(self):
        """Stop the dispatcher thread and clean up."""
        if self.publisher.ident is not None:
            self.publisher.stop()
            self.publisher.join(timeout=2)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_events_reach_observers_in_order(self):
        self.publisher.start()
        for i in range(3):
            self.publisher.publish_frame(make_frame(i))
        self.publisher.publish_statistics(make_stats())
        self.publisher.drain()

        self.assertEqual([e.frame_id for e in self.received[:3]], [0, 1, 2])
        self.assertIsInstance(self.received[3], StatisticsSnapshot)
        self.assertEqual(self.received[3].total_recognitions, 5)

    def test_full_queue_drops_oldest(self):
        """Test that a stalled dispatcher drops the oldest events instead of growing."""
        publisher = ResultPublisher(max_queue=2)
        received = []
        publisher.subscribe(received.append)
        for i in range(5):
            publisher.publish_frame(make_frame(i))

        self.assertEqual(publisher.dropped, 3)

        publisher.start()
        publisher.drain()
        publisher.stop()
        publisher.join(timeout=2)
        self.assertEqual([e.frame_id for e in received], [3, 4])

    def test_history_keeps_most_recent(self):
        for i in range(8):
            self.publisher.publish_frame(make_frame(i))
        self.assertEqual([r.frame_id for r in self.publisher.history()], [3, 4, 5, 6, 7])

    def test_default_history_holds_one_hundred(self):
        publisher = ResultPublisher(max_queue=1)
        for i in range(150):
            publisher.publish_frame(make_frame(i))
        history = publisher.history()
        self.assertEqual(len(history), 100)
        self.assertEqual(history[0].frame_id, 50)

    def test_failing_observer_is_isolated(self):
        def broken(event):
            raise RuntimeError("observer offline")

        self.publisher.subscribe(broken)
        late = []
        self.publisher.subscribe(late.append)
        self.publisher.start()
        self.publisher.publish_frame(make_frame(1))
        self.publisher.publish_frame(make_frame(2))
        self.publisher.drain()

        self.assertEqual(len(self.received), 2)
        self.assertEqual(len(late), 2)

    def test_unsubscribe(self):
        extra = []
        unsubscribe = self.publisher.subscribe(extra.append)
        unsubscribe()
        self.publisher.start()
        self.publisher.publish_frame(make_frame(1))
        self.publisher.drain()
        self.assertEqual(extra, [])
        self.assertEqual(len(self.received), 1)

    def test_export_history(self):
        for i in range(3):
            self.publisher.publish_frame(make_frame(i))
        path = os.path.join(self.temp_dir, "history.json")

        count = self.publisher.export_history(path)

        self.assertEqual(count, 3)
        with open(path) as f:
            records = json.load(f)
        self.assertEqual([r["data"]["frame_id"] for r in records], [0, 1, 2])
        self.assertTrue(all(r["type"] == "frame_result" for r in records))


class TestRecords(unittest.TestCase):
    def test_record_types(self):
        signal = DegradedSignal(consecutive_failures=3, last_error="model offline", timestamp=5.0)
        self.assertEqual(to_record(make_frame(1))["type"], "frame_result")
        self.assertEqual(to_record(make_stats())["type"], "statistics")
        record = to_record(signal)
        self.assertEqual(record["type"], "detection_degraded")
        self.assertEqual(record["timestamp"], 5.0)
        self.assertEqual(record["data"]["consecutive_failures"], 3)

    def test_json_lines_sink(self):
        stream = io.StringIO()
        sink = JsonLinesSink(stream)
        sink(make_frame(1))
        sink(make_stats())

        lines = stream.getvalue().splitlines()
        self.assertEqual(len(lines), 2)
        first = json.loads(lines[0])
        self.assertEqual(set(first), {"type", "data", "timestamp"})
        self.assertEqual(json.loads(lines[1])["data"]["frame_rate"], 2.0)


if __name__ == "__main__":
    unittest.main()
