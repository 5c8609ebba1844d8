# main.py
# Headless entry point: run live recognition or manage the gallery.

import argparse
import logging
import sys
import time

from config import CAMERA_INDEX, GALLERY_DIR, MATCH_THRESHOLD, TICK_PERIOD
from exceptions import RecognitionError
from face_types import DegradedSignal, FrameResult, StatisticsSnapshot
from identity_store import IdentityStore
from in_memory_index import GalleryIndex
from result_publisher import JsonLinesSink, ResultPublisher

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_file: str = None):
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def log_event(event):
    if isinstance(event, FrameResult):
        for match in event.matches:
            if match.identity is not None:
                logger.info(f"Recognized {match.identity.name} ({match.confidence:.1f}%)")
    elif isinstance(event, StatisticsSnapshot):
        logger.info(
            f"FPS {event.frame_rate:.1f} | faces {event.detected} | "
            f"match ratio {event.match_ratio:.2f} | total {event.total_recognitions}"
        )
    elif isinstance(event, DegradedSignal):
        logger.warning(str(event.as_exception()))


def cmd_run(args) -> int:
    from camera_utils import CameraFrameSource
    from face_detector import FaceDetector
    from recognition import RecognitionScheduler

    store = IdentityStore(root_dir=args.gallery)
    index = GalleryIndex(store)
    index.attach()
    detector = FaceDetector()
    source = CameraFrameSource(args.video or args.camera)
    publisher = ResultPublisher()
    publisher.subscribe(log_event)

    jsonl = open(args.jsonl, "a") if args.jsonl else None
    if jsonl is not None:
        publisher.subscribe(JsonLinesSink(jsonl))

    scheduler = RecognitionScheduler(
        source,
        detector,
        index,
        publisher=publisher,
        threshold=args.threshold,
        period=args.period,
    )
    try:
        with scheduler:
            scheduler.start_camera()
            detector.warm_up()
            scheduler.start_recognition()
            started = time.monotonic()
            while args.duration <= 0 or time.monotonic() - started < args.duration:
                time.sleep(0.2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except RecognitionError as exc:
        logger.error(f"Recognition failed: {exc}")
        return 1
    finally:
        index.detach()
        if args.export:
            publisher.export_history(args.export)
        if jsonl is not None:
            jsonl.close()

    logger.info(f"Session summary: {scheduler.describe()}")
    return 0


def cmd_enroll(args) -> int:
    from enrollment import enroll_file
    from face_detector import FaceDetector

    store = IdentityStore(root_dir=args.gallery)
    try:
        identity = enroll_file(store, FaceDetector(scale=1.0), args.name, args.image)
    except ValueError as exc:
        logger.error(f"Enrollment failed: {exc}")
        return 1
    print(f"Enrolled {identity.name} as {identity.id}")
    return 0


def cmd_bootstrap(args) -> int:
    from enrollment import bootstrap_from_folder
    from face_detector import FaceDetector

    store = IdentityStore(root_dir=args.gallery)
    created = bootstrap_from_folder(store, FaceDetector(scale=1.0), args.folder)
    print(f"{len(created)} identities created.")
    return 0


def cmd_list(args) -> int:
    store = IdentityStore(root_dir=args.gallery)
    identities = store.list_identities()
    print(f"Enrolled people ({len(identities)}):")
    for identity in identities:
        print(f"  {identity.id}: {identity.name} (enrolled {identity.enrolled_at:%Y-%m-%d %H:%M})")
    return 0


def cmd_cameras(args) -> int:
    from camera_utils import list_available_cameras

    indices = list_available_cameras(args.max_index)
    if not indices:
        print("No cameras found.")
        return 1
    print("Available cameras: " + ", ".join(str(i) for i in indices))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time face matching")
    parser.add_argument("--gallery", default=GALLERY_DIR, help="Identity gallery directory")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", help="Also write logs to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run live recognition")
    run.add_argument("--camera", type=int, default=CAMERA_INDEX, help="Camera device ID")
    run.add_argument("--video", help="Video file path (instead of camera)")
    run.add_argument("--threshold", type=float, default=MATCH_THRESHOLD)
    run.add_argument("--period", type=float, default=TICK_PERIOD, help="Seconds between ticks")
    run.add_argument("--duration", type=float, default=0, help="Stop after N seconds (0 = until Ctrl+C)")
    run.add_argument("--jsonl", help="Append JSON records of every event to this file")
    run.add_argument("--export", help="Write the recent frame history to this JSON file on exit")
    run.set_defaults(func=cmd_run)

    enroll = sub.add_parser("enroll", help="Enroll a person from an image")
    enroll.add_argument("name")
    enroll.add_argument("image")
    enroll.set_defaults(func=cmd_enroll)

    bootstrap = sub.add_parser("bootstrap", help="Enroll every image in a folder")
    bootstrap.add_argument("folder")
    bootstrap.set_defaults(func=cmd_bootstrap)

    list_cmd = sub.add_parser("list", help="List enrolled people")
    list_cmd.set_defaults(func=cmd_list)

    cameras = sub.add_parser("cameras", help="List camera device IDs that can be opened")
    cameras.add_argument("--max-index", type=int, default=5, help="Highest device ID to probe")
    cameras.set_defaults(func=cmd_cameras)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
