"""Tests for the lazy QGT operator."""
from __future__ import annotations

import unittest

from natgrad import config  # noqa: F401

import jax
import jax.numpy as jnp

from natgrad.qgt import QGT, Jacobian, ParameterSpace, SampleSpace, dense_S
from natgrad.stats import normalize_weights


def _jacobian(key, n_samples=40, n_params=6, weighted=False):
    k1, k2, k3 = jax.random.split(key, 3)
    o = jax.random.normal(k1, (n_samples, n_params)) + 1j * jax.random.normal(
        k2, (n_samples, n_params)
    )
    w = None
    if weighted:
        w = normalize_weights(jax.random.uniform(k3, (n_samples,), minval=0.5, maxval=1.5))
    return Jacobian.from_samples(o, importance_weights=w)


class QGTTest(unittest.TestCase):
    def test_parameter_space_matvec_matches_dense(self):
        """Lazy S @ v should match the dense S for weighted and plain Jacobians."""
        v = jax.random.normal(jax.random.key(1), (6,), dtype=jnp.complex128)
        for weighted in (False, True):
            jac = _jacobian(jax.random.key(0), weighted=weighted)
            qgt = QGT(jac, space=ParameterSpace())
            self.assertTrue(jnp.allclose(qgt @ v, qgt.to_dense() @ v, rtol=1e-10))
            self.assertTrue(jnp.allclose(qgt.to_dense(), dense_S(jac)))

    def test_sample_space_matvec_matches_dense(self):
        jac = _jacobian(jax.random.key(2))
        v = jax.random.normal(jax.random.key(3), (40,), dtype=jnp.complex128)
        qgt = QGT(jac, space=SampleSpace())
        J = jac.centered()
        self.assertEqual(qgt.shape, (40, 40))
        self.assertTrue(jnp.allclose(qgt.to_dense(), J @ J.conj().T / 40))
        self.assertTrue(jnp.allclose(qgt @ v, qgt.to_dense() @ v, rtol=1e-10))

    def test_diag_shift(self):
        jac = _jacobian(jax.random.key(4))
        v = jax.random.normal(jax.random.key(5), (6,))
        shifted = QGT(jac, diag_shift=0.3)
        plain = QGT(jac)
        self.assertEqual(shifted.shape, (6, 6))
        self.assertTrue(jnp.allclose(shifted @ v, plain @ v + 0.3 * v))
        self.assertTrue(
            jnp.allclose(shifted.to_dense(), plain.to_dense() + 0.3 * jnp.eye(6))
        )

    def test_matvec_normalized_by_samples(self):
        """S carries 1/N, not 1/n_params."""
        o = jnp.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 2.0], [0.0, -2.0]])
        jac = Jacobian.from_samples(o)
        S = QGT(jac).to_dense()
        self.assertTrue(jnp.allclose(S, jnp.diag(jnp.array([0.5, 2.0]))))


if __name__ == "__main__":
    unittest.main()
