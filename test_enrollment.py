# test_enrollment.py
"""Tests for enrolling identities from still images."""

import os
import shutil
import tempfile
import unittest

import cv2
import numpy as np

from enrollment import bootstrap_from_folder, enroll_image
from identity_store import IdentityStore


class FakeEncoder:
    """Returns a fixed embedding unless the image is completely black."""

    def __init__(self):
        self.calls = 0

    def encode_image(self, img_bgr):
        self.calls += 1
        if not img_bgr.any():
            return None
        emb = np.zeros(128, dtype="float32")
        emb[self.calls % 128] = 1.0
        return emb


class TestEnrollment(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.store = IdentityStore(root_dir=os.path.join(self.temp_dir, "identities"))
        self.images_dir = os.path.join(self.temp_dir, "Images")
        os.makedirs(self.images_dir)
        self.encoder = FakeEncoder()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_image(self, filename, value):
        img = np.full((40, 40, 3), value, dtype=np.uint8)
        cv2.imwrite(os.path.join(self.images_dir, filename), img)

    def test_enroll_image(self):
        img = np.full((40, 40, 3), 200, dtype=np.uint8)
        identity = enroll_image(self.store, self.encoder, "Alice", img)
        self.assertEqual(identity.name, "Alice")
        self.assertEqual(len(self.store.list_identities()), 1)

    def test_enroll_image_without_face(self):
        img = np.zeros((40, 40, 3), dtype=np.uint8)
        with self.assertRaises(ValueError):
            enroll_image(self.store, self.encoder, "Nobody", img)
        self.assertEqual(self.store.list_identities(), [])

    def test_bootstrap_uses_file_names(self):
        """Test that each readable image with a face becomes an identity."""
        self._write_image("Alice.png", 180)
        self._write_image("Bob.jpg", 120)
        self._write_image("blank.png", 0)
        with open(os.path.join(self.images_dir, "notes.txt"), "w") as f:
            f.write("not an image")

        created = bootstrap_from_folder(self.store, self.encoder, self.images_dir)

        self.assertEqual(sorted(i.name for i in created), ["Alice", "Bob"])
        self.assertEqual(len(self.store.list_identities()), 2)


if __name__ == "__main__":
    unittest.main()
