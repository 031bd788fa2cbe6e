"""Tests for the TDVP error diagnostics."""
from __future__ import annotations

import unittest

from natgrad import config  # noqa: F401 - JAX config must be imported first

import jax
import jax.numpy as jnp

from natgrad.core import NaturalGradient, tdvp_error, tdvp_relative_error


def _linear_batch(key, n_samples=500, n_params=3):
    """Energies that are exactly linear in the log-derivatives."""
    k1, k2, k3 = jax.random.split(key, 3)
    oks = jax.random.normal(k1, (n_samples, n_params))
    x_true = jax.random.normal(k2, (n_params,))
    eks = -3.0 + oks @ x_true
    log_psis = jax.random.normal(k3, (n_samples,))
    return oks, eks, log_psis, jnp.arange(n_samples), x_true


class TDVPErrorTest(unittest.TestCase):
    def test_known_values_on_linear_data(self) -> None:
        oks, eks, log_psis, samples, x_true = _linear_batch(jax.random.key(0))
        ng = NaturalGradient.from_arrays(oks, eks, log_psis, samples)
        grad_half = ng.gradient() / 2

        self.assertAlmostEqual(
            tdvp_error(ng.jacobian, ng.energy, grad_half, x_true), 1.0, places=8
        )
        self.assertAlmostEqual(
            tdvp_error(ng.jacobian, ng.energy, grad_half, -x_true), 0.0, places=8
        )
        self.assertLess(tdvp_relative_error(ng.jacobian, ng.energy, -x_true), 1e-8)

    def test_zero_update(self) -> None:
        oks, eks, log_psis, samples, _ = _linear_batch(jax.random.key(1))
        ng = NaturalGradient.from_arrays(oks, eks, log_psis, samples)
        ng.set_theta_dot(jnp.zeros((3,)))
        self.assertAlmostEqual(ng.compute_tdvp_error(), 1.0, places=12)
        self.assertAlmostEqual(ng.tdvp_relative_error(), 1.0, places=6)

    def test_staged_evaluation(self) -> None:
        oks, eks, log_psis, samples, x_true = _linear_batch(jax.random.key(2))
        ng = NaturalGradient.from_arrays(oks, eks, log_psis, samples)
        ng.set_theta_dot(-x_true)
        value = ng.evaluate_tdvp_error()
        self.assertIsNone(ng.tdvp_error)
        self.assertEqual(ng.compute_tdvp_error(), value)
        self.assertEqual(ng.tdvp_error, value)

    def test_control_batch(self) -> None:
        oks, eks, log_psis, samples, x_true = _linear_batch(jax.random.key(3))
        ng = NaturalGradient.from_arrays(oks, eks, log_psis, samples)
        noise = jax.random.normal(jax.random.key(4), eks.shape)
        ctrl = NaturalGradient.from_arrays(oks, eks + noise, log_psis, samples)

        ng.set_theta_dot(-x_true)
        own = ng.evaluate_tdvp_error()
        on_control = ng.evaluate_tdvp_error(ctrl)
        self.assertAlmostEqual(own, 0.0, places=8)
        self.assertGreater(on_control, 0.1)
        self.assertAlmostEqual(
            on_control,
            tdvp_error(ctrl.jacobian, ctrl.energy, ctrl.gradient() / 2, -x_true),
            places=12,
        )
        self.assertGreater(ng.tdvp_relative_error(ctrl), 0.1)
        self.assertIsNone(ctrl.theta_dot)

    def test_shape_errors(self) -> None:
        oks, eks, log_psis, samples, _ = _linear_batch(jax.random.key(5))
        ng = NaturalGradient.from_arrays(oks, eks, log_psis, samples)
        short = NaturalGradient.from_arrays(
            oks[:100], eks[:100], log_psis[:100], samples[:100]
        )
        with self.assertRaises(ValueError):
            tdvp_error(ng.jacobian, ng.energy, ng.gradient() / 2, jnp.ones((4,)))
        with self.assertRaises(ValueError):
            tdvp_relative_error(ng.jacobian, short.energy, jnp.ones((3,)))


if __name__ == "__main__":
    unittest.main()
