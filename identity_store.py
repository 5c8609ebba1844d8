# identity_store.py

import json
import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

import numpy as np

from config import EMBEDDING_DIM
from exceptions import GalleryFetchError
from face_types import Identity
from matching import ArrayLike, as_embedding

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class IdentityStore:
    """
    File-backed gallery: one directory per identity holding
    ``embeddings.npz`` and ``meta.json``.
    """

    def __init__(self, root_dir: str = "identities", embedding_dim: int = EMBEDDING_DIM):
        self.root_dir = os.path.abspath(root_dir)
        self.embedding_dim = embedding_dim
        os.makedirs(self.root_dir, exist_ok=True)
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    # ---------- Read side ----------

    def list_identities(self) -> List[Identity]:
        """
        Load every enrolled identity, oldest first.

        Representative embedding: mean of embeddings.npz["embeddings"].
        """
        try:
            entries = sorted(os.listdir(self.root_dir))
        except OSError as exc:
            raise GalleryFetchError(f"cannot read gallery at {self.root_dir}: {exc}") from exc

        identities: List[Identity] = []
        for ident in entries:
            ident_dir = os.path.join(self.root_dir, ident)
            if not os.path.isdir(ident_dir):
                continue
            identity = self._load_identity(ident, ident_dir)
            if identity is not None:
                identities.append(identity)

        identities.sort(key=lambda i: (i.enrolled_at, i.id))
        return identities

    def _load_identity(self, identity_id: str, ident_dir: str) -> Optional[Identity]:
        emb_path = os.path.join(ident_dir, "embeddings.npz")
        if not os.path.exists(emb_path):
            return None

        try:
            with np.load(emb_path) as data:
                embs = data["embeddings"]
            if embs.size == 0:
                return None
            rep = embs.reshape(len(embs), -1).mean(axis=0)
            embedding = as_embedding(rep, self.embedding_dim)
        except Exception as exc:
            logger.warning(f"Skipping identity {identity_id}: unreadable embeddings ({exc})")
            return None

        meta = self.load_meta(identity_id) or {}
        return Identity(
            id=identity_id,
            name=meta.get("name") or identity_id,
            embedding=embedding,
            enrolled_at=_parse_time(meta.get("created_at"), emb_path),
        )

    def load_meta(self, identity_id: str) -> Optional[dict]:
        meta_path = os.path.join(self.root_dir, identity_id, "meta.json")
        if not os.path.exists(meta_path):
            return None
        try:
            with open(meta_path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning(f"Ignoring unreadable meta for {identity_id}: {exc}")
            return None

    # ---------- Write side ----------

    def _generate_identity_id(self) -> str:
        max_num = 0
        for name in os.listdir(self.root_dir):
            if not name.startswith("person_"):
                continue
            try:
                max_num = max(max_num, int(name.split("_")[1]))
            except (IndexError, ValueError):
                continue
        return f"person_{max_num + 1:06d}"

    def insert_identity(self, name: str, embedding: ArrayLike, source: str = "enrollment") -> Identity:
        name = (name or "").strip()
        if not name:
            raise ValueError("name is required")
        emb = as_embedding(embedding, self.embedding_dim)
        enrolled_at = datetime.now(timezone.utc)

        with self._lock:
            identity_id = self._generate_identity_id()
            ident_dir = os.path.join(self.root_dir, identity_id)
            os.makedirs(ident_dir, exist_ok=False)

            np.savez_compressed(
                os.path.join(ident_dir, "embeddings.npz"),
                embeddings=emb.reshape(1, -1),
            )
            meta = {
                "id": identity_id,
                "name": name,
                "created_at": enrolled_at.isoformat(),
                "source": source,
                "num_embeddings": 1,
            }
            with open(os.path.join(ident_dir, "meta.json"), "w") as f:
                json.dump(meta, f, indent=2)

        logger.info(f"Enrolled {name!r} as {identity_id}")
        self._notify()
        return Identity(id=identity_id, name=name, embedding=emb, enrolled_at=enrolled_at)

    def delete_identity(self, identity_id: str) -> bool:
        ident_dir = os.path.join(self.root_dir, identity_id)
        with self._lock:
            if not os.path.isdir(ident_dir):
                return False
            shutil.rmtree(ident_dir)
        logger.info(f"Deleted identity {identity_id}")
        self._notify()
        return True

    # ---------- Change notifications ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Gallery change listener failed")


def _parse_time(raw: Optional[str], fallback_path: str) -> datetime:
    if raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
        except ValueError:
            pass
    return datetime.fromtimestamp(os.path.getmtime(fallback_path), tz=timezone.utc)
