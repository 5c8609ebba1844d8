# frame_matcher.py
# Matches every face detected in one frame against a gallery snapshot.

import time
from typing import Iterable, Optional

from config import DISTANCE_MAX, MATCH_THRESHOLD
from face_types import DetectedFace, FrameResult, MatchResult
from gallery_snapshot import GallerySnapshot
from matching import is_match


def match_face(
    face: DetectedFace,
    snapshot: GallerySnapshot,
    threshold: float = MATCH_THRESHOLD,
    distance_max: float = DISTANCE_MAX,
) -> MatchResult:
    identity, dist = snapshot.nearest(face.embedding)
    if identity is not None and not is_match(dist, threshold):
        identity = None
    return MatchResult(face=face, identity=identity, distance=dist, distance_max=distance_max)


def match_frame(
    detections: Iterable[DetectedFace],
    snapshot: GallerySnapshot,
    threshold: float = MATCH_THRESHOLD,
    timestamp: Optional[float] = None,
    frame_id: int = 0,
    distance_max: float = DISTANCE_MAX,
) -> FrameResult:
    """
    Build the FrameResult for one frame.

    Pure given its inputs: the snapshot is only read, so several frames may
    be matched against the same snapshot concurrently.
    """
    matches = tuple(match_face(face, snapshot, threshold, distance_max) for face in detections)
    return FrameResult(
        timestamp=time.time() if timestamp is None else timestamp,
        matches=matches,
        snapshot_version=snapshot.version,
        frame_id=frame_id,
    )
