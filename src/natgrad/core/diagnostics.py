"""TDVP consistency diagnostics for natural-gradient updates.

Both quantities compare the energy fluctuations predicted by the linearized
update, ``Eeff = -J theta_dot``, with the sampled fluctuations ``E - <E>``.
"""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import jax
import jax.numpy as jnp

from natgrad.qgt.jacobian import Jacobian
from natgrad.stats.energy import EnergySummary

__all__ = ["tdvp_error", "tdvp_relative_error"]


def _check_shapes(jac: Jacobian, energy: EnergySummary, theta_dot: jax.Array) -> None:
    if jac.n_samples != len(energy):
        raise ValueError(
            f"Jacobian has {jac.n_samples} samples but the energy summary has {len(energy)}"
        )
    if theta_dot.shape != (jac.n_parameters,):
        raise ValueError(
            f"theta_dot must have shape ({jac.n_parameters},), got {theta_dot.shape}"
        )


def tdvp_error(
    jac: Jacobian,
    energy: EnergySummary,
    grad_half: jax.Array,
    theta_dot: jax.Array,
) -> float:
    """TDVP error of ``theta_dot``.

    ``1 + (-<Eeff, Eeff> / (N - 1) + Re(theta_dot^H grad_half) N / (N - 1)) / (2 var(E))``
    with ``grad_half = J^H (E - <E>) / N``.
    """
    theta_dot = jnp.asarray(theta_dot)
    _check_shapes(jac, energy, theta_dot)
    n = len(energy)

    eks_eff = -(jac.centered() @ theta_dot)
    var_eff_1 = -jnp.real(jnp.vdot(eks_eff, eks_eff)) / (n - 1)
    var_eff_2 = jnp.real(jnp.vdot(theta_dot, grad_half)) * n / (n - 1)
    var_eff = var_eff_1 + var_eff_2
    return float(1 + var_eff / energy.var / 2)


def tdvp_relative_error(
    jac: Jacobian,
    energy: EnergySummary,
    theta_dot: jax.Array,
) -> float:
    """Relative residual ``std(Eeff - (E - <E>)) / std(E - <E>)``."""
    theta_dot = jnp.asarray(theta_dot)
    _check_shapes(jac, energy, theta_dot)

    eks_eff = -(jac.centered() @ theta_dot)
    eks = energy.centered()
    return float(jnp.std(eks_eff - eks, ddof=1) / (jnp.std(eks, ddof=1) + 1e-10))
