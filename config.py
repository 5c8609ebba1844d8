# config.py
# Configuration constants for the face matching pipeline.
# Every value can be overridden with a FACE_* environment variable.

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


# Embeddings (face_recognition / dlib encoder)
EMBEDDING_DIM = _env_int("FACE_EMBEDDING_DIM", 128)

# Matching thresholds (Euclidean distance between raw embeddings).
# 0.6 is the tolerance the dlib encoder is calibrated for; recalibrate both
# values when swapping the embedding extractor.
MATCH_THRESHOLD = _env_float("FACE_MATCH_THRESHOLD", 0.6)
DISTANCE_MAX = _env_float("FACE_DISTANCE_MAX", 0.6)

# Scheduling
TICK_PERIOD = _env_float("FACE_TICK_PERIOD", 0.5)
DEGRADED_AFTER_FAILURES = _env_int("FACE_DEGRADED_AFTER_FAILURES", 3)

# Statistics window (seconds)
STATS_WINDOW = _env_float("FACE_STATS_WINDOW", 1.0)

# Publishing
HISTORY_SIZE = _env_int("FACE_HISTORY_SIZE", 100)
PUBLISH_QUEUE_SIZE = _env_int("FACE_PUBLISH_QUEUE_SIZE", 64)

# Detection settings
DETECT_SCALE = _env_float("FACE_DETECT_SCALE", 0.5)
DETECT_UPSAMPLE = _env_int("FACE_DETECT_UPSAMPLE", 1)
DETECT_MODEL = os.getenv("FACE_DETECT_MODEL", "hog")

# Camera
CAMERA_INDEX = _env_int("FACE_CAMERA_INDEX", 0)
FRAME_WIDTH = _env_int("FACE_FRAME_WIDTH", 640)
FRAME_HEIGHT = _env_int("FACE_FRAME_HEIGHT", 480)

# Gallery storage
GALLERY_DIR = os.getenv("FACE_GALLERY_DIR", "identities")
