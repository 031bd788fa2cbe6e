"""Tests for discarding extreme local energies."""
from __future__ import annotations

import unittest

from natgrad import config  # noqa: F401 - JAX config must be imported first

import jax.numpy as jnp
import numpy as np

from natgrad.stats import remove_outliers


class RemoveOutliersTest(unittest.TestCase):
    def setUp(self) -> None:
        self.eks = jnp.array([0.0, 0.1, 9.0, -0.1, 0.2, -8.0, 0.05, -0.05, 0.0, 0.1])
        self.oks = jnp.arange(20.0).reshape(10, 2)
        self.log_psis = jnp.arange(10) * 1j
        self.samples = np.arange(10)

    def test_removes_largest_deviations_in_order(self) -> None:
        eks, oks, log_psis, samples, weights = remove_outliers(
            self.eks, self.oks, self.log_psis, self.samples, cut=0.2
        )
        expected = np.array([0, 1, 3, 4, 6, 7, 8, 9])
        np.testing.assert_array_equal(samples, expected)
        self.assertTrue(jnp.array_equal(eks, self.eks[expected]))
        self.assertTrue(jnp.array_equal(oks, self.oks[expected]))
        self.assertTrue(jnp.array_equal(log_psis, self.log_psis[expected]))
        self.assertIsNone(weights)

    def test_weights_sliced_not_renormalized(self) -> None:
        w = jnp.array([1.0, 1.0, 0.5, 1.0, 1.0, 1.5, 1.0, 1.0, 1.0, 1.0])
        *_, samples, weights = remove_outliers(
            self.eks, self.oks, self.log_psis, self.samples, w, cut=0.2
        )
        self.assertTrue(jnp.array_equal(weights, w[np.asarray(samples)]))
        self.assertEqual(float(jnp.sum(weights)), 8.0)

    def test_sequence_inputs(self) -> None:
        oks_rows = [self.oks[i] for i in range(10)]
        samples = [f"s{i}" for i in range(10)]
        _, oks, _, kept, _ = remove_outliers(
            self.eks, oks_rows, self.log_psis, samples, cut=0.2
        )
        self.assertIsInstance(oks, list)
        self.assertEqual(len(oks), 8)
        self.assertEqual(kept, ["s0", "s1", "s3", "s4", "s6", "s7", "s8", "s9"])

    def test_opaque_sample_container(self) -> None:
        class Batch:
            def __init__(self, configs):
                self.configs = configs

            def __getitem__(self, idx):
                return Batch(self.configs[idx])

        *_, kept, _ = remove_outliers(
            self.eks, self.oks, self.log_psis, Batch(np.arange(10) * 10), cut=0.2
        )
        self.assertIsInstance(kept, Batch)
        np.testing.assert_array_equal(kept.configs, [0, 10, 30, 40, 60, 70, 80, 90])

        with self.assertRaisesRegex(TypeError, "cannot select samples"):
            remove_outliers(self.eks, self.oks, self.log_psis, object(), cut=0.2)

    def test_zero_cut_is_identity(self) -> None:
        out = remove_outliers(self.eks, self.oks, self.log_psis, self.samples, cut=0.0)
        self.assertIs(out[0], self.eks)
        self.assertIs(out[3], self.samples)
        # int(0.05 * 10) == 0
        out = remove_outliers(self.eks, self.oks, self.log_psis, self.samples, cut=0.05)
        self.assertIs(out[1], self.oks)

    def test_invalid_cut(self) -> None:
        for cut in (-0.1, 1.0, 1.5):
            with self.assertRaises(ValueError):
                remove_outliers(self.eks, self.oks, self.log_psis, self.samples, cut=cut)

    def test_verbose_logs(self) -> None:
        with self.assertLogs("natgrad.stats.outliers", level="INFO") as logs:
            remove_outliers(
                self.eks, self.oks, self.log_psis, self.samples, cut=0.2, verbose=True
            )
        self.assertIn("Discarded 2 of 10", logs.output[0])


if __name__ == "__main__":
    unittest.main()
