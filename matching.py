# matching.py
# Embedding comparison: Euclidean distance, confidence and match decision.
#
# Distance is the L2 norm of the difference of the raw embeddings, which is
# the metric the face_recognition encoder is trained for. Thresholds in
# config.py are calibrated against it.

import math
from typing import Optional, Sequence, Union

import numpy as np

from config import DISTANCE_MAX, MATCH_THRESHOLD
from exceptions import DimensionMismatch

ArrayLike = Union[np.ndarray, Sequence[float]]


def as_embedding(values: ArrayLike, dim: Optional[int] = None) -> np.ndarray:
    """Return a read-only float32 copy of ``values`` as a 1-D embedding."""
    emb = np.array(values, dtype="float32")
    if emb.ndim != 1:
        raise DimensionMismatch(f"embedding must be 1D, got shape {emb.shape}")
    if dim is not None and emb.shape[0] != dim:
        raise DimensionMismatch(f"expected {dim} dimensions, got {emb.shape[0]}")
    emb.flags.writeable = False
    return emb


def distance(a: ArrayLike, b: ArrayLike) -> float:
    a = np.asarray(a, dtype="float32")
    b = np.asarray(b, dtype="float32")
    if a.ndim != 1 or b.ndim != 1:
        raise DimensionMismatch("embeddings must be 1D")
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(f"cannot compare {a.shape[0]}-d and {b.shape[0]}-d embeddings")
    diff = a - b
    return float(np.sqrt(np.dot(diff, diff)))


def distances(matrix: np.ndarray, probe: ArrayLike) -> np.ndarray:
    """Distance from ``probe`` to every row of ``matrix``."""
    probe = np.asarray(probe, dtype="float32")
    if probe.ndim != 1:
        raise DimensionMismatch("probe embedding must be 1D")
    if matrix.size == 0:
        return np.empty((0,), dtype="float32")
    if matrix.shape[1] != probe.shape[0]:
        raise DimensionMismatch(
            f"gallery holds {matrix.shape[1]}-d embeddings, probe is {probe.shape[0]}-d"
        )
    diffs = matrix - probe.reshape(1, -1)
    return np.sqrt(np.einsum("ij,ij->i", diffs, diffs))


def confidence(dist: float, distance_max: float = DISTANCE_MAX) -> float:
    """Map a distance to a 0-100 score, decreasing as the distance grows."""
    if distance_max <= 0:
        raise ValueError("distance_max must be positive")
    if math.isnan(dist) or math.isinf(dist):
        return 0.0
    score = (1.0 - dist / distance_max) * 100.0
    return min(100.0, max(0.0, score))


def is_match(dist: float, threshold: float = MATCH_THRESHOLD) -> bool:
    return dist < threshold
