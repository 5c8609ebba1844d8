# face_detector.py
# Face detection and 128-d embeddings via face_recognition (dlib).

import logging
import threading
from typing import List, Optional

import cv2
import face_recognition
import numpy as np

from config import DETECT_MODEL, DETECT_SCALE, DETECT_UPSAMPLE, EMBEDDING_DIM
from exceptions import ModelUnready
from face_types import BoundingBox, DetectedFace
from matching import as_embedding

logger = logging.getLogger(__name__)


class FaceDetector:
    def __init__(
        self,
        scale: float = DETECT_SCALE,
        upsample: int = DETECT_UPSAMPLE,
        model: str = DETECT_MODEL,
    ):
        if not 0 < scale <= 1:
            raise ValueError("scale must be in (0, 1]")
        self.scale = scale
        self.upsample = upsample
        self.model = model
        self._ready = threading.Event()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def warm_up(self):
        """Run the models once so the first real frame is not the slow one."""
        blank = np.zeros((64, 64, 3), dtype=np.uint8)
        face_recognition.face_locations(blank, number_of_times_to_upsample=0, model=self.model)
        face_recognition.face_encodings(blank, [(0, 63, 63, 0)])
        self._ready.set()
        logger.info(f"Face detector ready (model={self.model}, scale={self.scale})")

    def detect(self, frame: np.ndarray) -> List[DetectedFace]:
        if not self._ready.is_set():
            raise ModelUnready("face detector has not been warmed up")
        if frame is None or frame.size == 0:
            return []

        if self.scale != 1:
            small = cv2.resize(frame, (0, 0), fx=self.scale, fy=self.scale)
        else:
            small = frame
        small_rgb = cv2.cvtColor(small, cv2.COLOR_BGR2RGB)

        locations = face_recognition.face_locations(
            small_rgb,
            number_of_times_to_upsample=self.upsample,
            model=self.model,
        )
        encodings = face_recognition.face_encodings(small_rgb, locations)

        inv = 1 / self.scale
        faces = []
        for (top, right, bottom, left), encoding in zip(locations, encodings):
            box = BoundingBox.from_css(
                int(top * inv), int(right * inv), int(bottom * inv), int(left * inv)
            )
            faces.append(DetectedFace(box=box, embedding=as_embedding(encoding, EMBEDDING_DIM)))
        return faces

    def encode_image(self, img_bgr: np.ndarray) -> Optional[np.ndarray]:
        """Embedding of the largest face in a full-resolution image, or None."""
        img_rgb = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
        boxes = face_recognition.face_locations(img_rgb, model=self.model)
        if not boxes:
            return None

        largest = max(boxes, key=lambda b: (b[1] - b[3]) * (b[2] - b[0]))
        encodings = face_recognition.face_encodings(img_rgb, [largest])
        if not encodings:
            return None
        return as_embedding(encodings[0], EMBEDDING_DIM)
