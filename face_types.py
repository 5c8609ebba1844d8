# face_types.py
# Value types shared across the matching pipeline.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from config import DISTANCE_MAX
from exceptions import DetectionDegraded
from matching import confidence


class SessionState(Enum):
    IDLE = "idle"
    CAMERA_READY = "camera_ready"
    RECOGNIZING = "recognizing"


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_css(cls, top: int, right: int, bottom: int, left: int) -> "BoundingBox":
        """Convert a face_recognition (top, right, bottom, left) box."""
        return cls(x=left, y=top, width=max(0, right - left), height=max(0, bottom - top))

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Identity:
    id: str
    name: str
    embedding: np.ndarray = field(repr=False, compare=False)
    enrolled_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enrolled_at": self.enrolled_at.isoformat(),
        }


@dataclass(frozen=True)
class DetectedFace:
    box: BoundingBox
    embedding: np.ndarray = field(repr=False, compare=False)


@dataclass(frozen=True)
class MatchResult:
    face: DetectedFace
    identity: Optional[Identity]
    distance: float
    distance_max: float = DISTANCE_MAX

    @property
    def confidence(self) -> float:
        return confidence(self.distance, self.distance_max)

    @property
    def is_known(self) -> bool:
        return self.identity is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "box": list(self.face.box.as_tuple()),
            "identity": self.identity.to_dict() if self.identity else None,
            # inf is not valid JSON
            "distance": self.distance if np.isfinite(self.distance) else None,
            "confidence": round(self.confidence, 2),
        }


@dataclass(frozen=True)
class FrameResult:
    timestamp: float
    matches: Tuple[MatchResult, ...]
    snapshot_version: int
    frame_id: int = 0

    @property
    def detected(self) -> int:
        return len(self.matches)

    @property
    def matched(self) -> int:
        return sum(1 for m in self.matches if m.is_known)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_id": self.frame_id,
            "timestamp": self.timestamp,
            "snapshot_version": self.snapshot_version,
            "matches": [m.to_dict() for m in self.matches],
        }


@dataclass(frozen=True)
class StatisticsSnapshot:
    timestamp: float
    window_seconds: float
    frame_rate: float
    detected: int
    matched: int
    match_ratio: float
    total_recognitions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_seconds": self.window_seconds,
            "frame_rate": self.frame_rate,
            "detected": self.detected,
            "matched": self.matched,
            "match_ratio": self.match_ratio,
            "total_recognitions": self.total_recognitions,
        }


@dataclass(frozen=True)
class DegradedSignal:
    """Published once when detection keeps failing tick after tick."""

    consecutive_failures: int
    last_error: str
    timestamp: float

    def as_exception(self) -> DetectionDegraded:
        return DetectionDegraded(
            f"detection failed {self.consecutive_failures} times in a row: {self.last_error}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }
