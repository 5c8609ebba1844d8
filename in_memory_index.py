# in_memory_index.py

import logging
import threading
from typing import Callable, Optional

from exceptions import RecognitionError
from gallery_snapshot import GallerySnapshot
from identity_store import IdentityStore

logger = logging.getLogger(__name__)


class GalleryIndex:
    """
    Holds the active GallerySnapshot and swaps in a new one whenever the
    store reports a change.

    ``snapshot`` stays ``None`` until the first successful fetch; a failed
    fetch keeps the previous snapshot instead of substituting an empty one.
    """

    def __init__(self, store: IdentityStore, load: bool = True):
        self._store = store
        self._lock = threading.RLock()
        self._snapshot: Optional[GallerySnapshot] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.last_error: Optional[Exception] = None
        if load:
            self.refresh()

    @property
    def snapshot(self) -> Optional[GallerySnapshot]:
        return self._snapshot

    def refresh(self) -> bool:
        # Builds happen under the lock so two notifications cannot race a
        # newer snapshot out with an older one.
        with self._lock:
            try:
                identities = self._store.list_identities()
                snapshot = GallerySnapshot.build(identities)
            except (RecognitionError, OSError) as exc:
                self.last_error = exc
                kept = self._snapshot.version if self._snapshot else None
                logger.error(f"Gallery refresh failed, keeping snapshot v{kept}: {exc}")
                return False

            self._snapshot = snapshot
            self.last_error = None
        logger.info(f"Gallery snapshot v{snapshot.version} active ({len(snapshot)} identities)")
        return True

    def attach(self):
        with self._lock:
            if self._unsubscribe is None:
                self._unsubscribe = self._store.subscribe(self.refresh)

    def detach(self):
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
