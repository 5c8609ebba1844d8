# enrollment.py
# Enrolls identities from still images.

import logging
import os
from typing import List

import cv2
import numpy as np

from face_types import Identity

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp"}


def enroll_image(store, detector, name: str, img_bgr: np.ndarray) -> Identity:
    """Enroll the largest face in ``img_bgr`` under ``name``."""
    embedding = detector.encode_image(img_bgr)
    if embedding is None:
        raise ValueError("no face found in image")
    return store.insert_identity(name, embedding)


def enroll_file(store, detector, name: str, path: str) -> Identity:
    img = cv2.imread(path)
    if img is None:
        raise ValueError(f"unreadable image: {path}")
    return enroll_image(store, detector, name, img)


def bootstrap_from_folder(store, detector, folder: str) -> List[Identity]:
    """Enroll every image in ``folder``, using the file name as the person's name."""
    created = []
    for filename in sorted(os.listdir(folder)):
        stem, ext = os.path.splitext(filename)
        if filename.startswith(".") or ext.lower() not in IMAGE_EXTENSIONS:
            continue

        path = os.path.join(folder, filename)
        try:
            identity = enroll_file(store, detector, stem, path)
        except ValueError as exc:
            logger.warning(f"Skipping {path}: {exc}")
            continue
        created.append(identity)

    logger.info(f"Bootstrap complete. {len(created)} identities created.")
    return created
