# test_matching.py
"""Tests for the embedding comparator."""

import math
import unittest

import numpy as np

from exceptions import DimensionMismatch
from matching import as_embedding, confidence, distance, distances, is_match


class TestDistance(unittest.TestCase):
    def _create_fake_embedding(self, seed=0):
        """Create a fake 128-dimensional embedding for testing."""
        rng = np.random.default_rng(seed)
        return rng.random(128).astype("float32")

    def test_distance_to_self_is_zero(self):
        """Test that an embedding is at distance zero from itself."""
        for seed in range(5):
            emb = self._create_fake_embedding(seed)
            self.assertEqual(distance(emb, emb), 0.0)

    def test_distance_is_symmetric(self):
        """Test that distance(a, b) == distance(b, a)."""
        for seed in range(5):
            a = self._create_fake_embedding(seed)
            b = self._create_fake_embedding(seed + 100)
            self.assertEqual(distance(a, b), distance(b, a))

    def test_distance_is_positive_for_different_embeddings(self):
        a = self._create_fake_embedding(1)
        b = a.copy()
        b[0] += 0.5
        self.assertAlmostEqual(distance(a, b), 0.5, places=5)

    def test_known_euclidean_value(self):
        self.assertAlmostEqual(distance([0.0, 0.0], [3.0, 4.0]), 5.0, places=6)

    def test_dimension_mismatch_raises(self):
        """Test that mismatched lengths fail loudly instead of truncating."""
        with self.assertRaises(DimensionMismatch):
            distance(np.zeros(128), np.zeros(127))

    def test_dimension_mismatch_is_value_error(self):
        with self.assertRaises(ValueError):
            distance(np.zeros(4), np.zeros(5))

    def test_non_1d_embedding_rejected(self):
        with self.assertRaises(DimensionMismatch):
            distance(np.zeros((2, 64)), np.zeros(128))

    def test_distances_matches_scalar_distance(self):
        """Test that the vectorised form agrees with the scalar one."""
        probe = self._create_fake_embedding(0)
        matrix = np.vstack([self._create_fake_embedding(s) for s in (1, 2, 3)])
        row_dists = distances(matrix, probe)
        for row, d in zip(matrix, row_dists):
            self.assertAlmostEqual(float(d), distance(row, probe), places=5)

    def test_distances_dimension_mismatch(self):
        matrix = np.zeros((3, 128), dtype="float32")
        with self.assertRaises(DimensionMismatch):
            distances(matrix, np.zeros(64))


class TestConfidence(unittest.TestCase):
    def test_scenario_value(self):
        """Test distance 0.2 with distance_max 0.6 gives 66.7%."""
        self.assertAlmostEqual(confidence(0.2, 0.6), 66.6667, places=3)

    def test_bounds(self):
        self.assertEqual(confidence(0.0), 100.0)
        self.assertEqual(confidence(5.0), 0.0)
        self.assertEqual(confidence(math.inf), 0.0)

    def test_monotonically_decreasing(self):
        """Test that a smaller distance always gives a higher confidence."""
        steps = np.linspace(0.0, 0.59, 60)
        scores = [confidence(float(d), 0.6) for d in steps]
        for higher, lower in zip(scores, scores[1:]):
            self.assertGreater(higher, lower)
        for score in scores:
            self.assertGreaterEqual(score, 0.0)
            self.assertLessEqual(score, 100.0)

    def test_invalid_distance_max(self):
        with self.assertRaises(ValueError):
            confidence(0.1, 0.0)


class TestIsMatch(unittest.TestCase):
    def test_strictly_below_threshold(self):
        self.assertTrue(is_match(0.59, 0.6))
        self.assertFalse(is_match(0.6, 0.6))
        self.assertFalse(is_match(0.7, 0.6))

    def test_infinite_distance_never_matches(self):
        self.assertFalse(is_match(math.inf, 0.6))


class TestAsEmbedding(unittest.TestCase):
    def test_returns_read_only_copy(self):
        source = np.ones(8, dtype="float64")
        emb = as_embedding(source, 8)
        self.assertEqual(emb.dtype, np.float32)
        self.assertFalse(emb.flags.writeable)
        source[0] = 5.0
        self.assertEqual(emb[0], 1.0)

    def test_wrong_dimension(self):
        with self.assertRaises(DimensionMismatch):
            as_embedding([1.0, 2.0], 128)


if __name__ == "__main__":
    unittest.main()
