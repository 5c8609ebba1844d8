# gallery_snapshot.py
# Immutable, versioned view of the enrolled identities.

import itertools
import threading
from typing import Iterable, Iterator, Optional, Tuple

import numpy as np

from exceptions import DimensionMismatch
from face_types import Identity
from matching import ArrayLike, distances

_version_lock = threading.Lock()
_versions = itertools.count(1)


def _next_version() -> int:
    with _version_lock:
        return next(_versions)


class GallerySnapshot:
    """
    Point-in-time copy of the gallery used by one or more matching passes.

    Identities are kept ordered by (enrolled_at, id) so that the first
    minimum found by a linear scan is also the tie-break winner.
    """

    __slots__ = ("_identities", "_matrix", "_version")

    def __init__(self, identities: Tuple[Identity, ...], matrix: np.ndarray, version: int):
        self._identities = identities
        self._matrix = matrix
        self._version = version

    @classmethod
    def build(cls, identities: Iterable[Identity]) -> "GallerySnapshot":
        ordered = tuple(sorted(identities, key=lambda ident: (ident.enrolled_at, ident.id)))
        if ordered:
            dims = {np.asarray(ident.embedding).shape for ident in ordered}
            if len(dims) != 1 or len(next(iter(dims))) != 1:
                raise DimensionMismatch(f"gallery embeddings have mixed shapes: {sorted(dims)}")
            matrix = np.vstack([np.asarray(ident.embedding, dtype="float32") for ident in ordered])
        else:
            matrix = np.empty((0, 0), dtype="float32")
        matrix.flags.writeable = False
        return cls(ordered, matrix, _next_version())

    @property
    def version(self) -> int:
        return self._version

    @property
    def identities(self) -> Tuple[Identity, ...]:
        return self._identities

    @property
    def is_empty(self) -> bool:
        return not self._identities

    def __len__(self) -> int:
        return len(self._identities)

    def __iter__(self) -> Iterator[Identity]:
        return iter(self._identities)

    def __setattr__(self, name, value):
        if hasattr(self, "_version"):
            raise AttributeError("GallerySnapshot is immutable")
        object.__setattr__(self, name, value)

    def nearest(self, embedding: ArrayLike) -> Tuple[Optional[Identity], float]:
        if not self._identities:
            return None, float("inf")
        dists = distances(self._matrix, embedding)
        idx = int(np.argmin(dists))
        return self._identities[idx], float(dists[idx])

    def __repr__(self) -> str:
        return f"GallerySnapshot(version={self._version}, size={len(self._identities)})"
