"""Importance-weighted summary of sampled local energies."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import math
from dataclasses import dataclass

import jax
import jax.numpy as jnp

from natgrad.stats.weighted import weighted_mean, weighted_var

__all__ = [
    "CENTERING_MODES",
    "IMAG_TOL",
    "EnergySummary",
    "check_centering_mode",
]

CENTERING_MODES = ("importance_sqrt", "importance", "no_importance")

# Imaginary parts below this are treated as round-off.
IMAG_TOL = 1e-10


def check_centering_mode(mode: str) -> str:
    if mode not in CENTERING_MODES:
        raise ValueError(
            "mode should be 'importance_sqrt', 'importance' or 'no_importance'. "
            f"{mode!r} was given."
        )
    return mode


def _demote_if_real(x: jax.Array) -> jax.Array:
    if jnp.iscomplexobj(x) and bool(jnp.all(jnp.abs(jnp.imag(x)) < IMAG_TOL)):
        return jnp.real(x)
    return x


def _format_with_error(value: float, error: float) -> tuple[str, str]:
    if error > 0 and math.isfinite(error):
        digits = int(min(math.ceil(-math.log10(error)), 10)) + 1
    else:
        digits = 11
    return f"{round(value, digits)}", f"{round(error, digits)}"


@dataclass(frozen=True)
class EnergySummary:
    """Mean, variance and error bars of a batch of local energies.

    ``data`` holds ``(E - mean) * sqrt(w)``; the other centerings are views
    computed from it by :meth:`centered`.
    """

    data: jax.Array
    mean: jax.Array
    std_of_mean: float
    var: float
    std_of_var: float
    importance_weights: jax.Array | None = None

    @classmethod
    def from_samples(
        cls,
        local_energies,
        *,
        importance_weights=None,
        mean=None,
        var=None,
    ) -> "EnergySummary":
        """Summarize local energies, optionally importance weighted.

        Args:
            local_energies: Per-sample local energies, real or complex.
            importance_weights: Per-sample weights normalized to mean 1, or
                None for uniform weights.
            mean: Precomputed energy mean, used verbatim if given.
            var: Precomputed energy variance, used verbatim if given.
        """
        eks = _demote_if_real(jnp.asarray(local_energies).reshape(-1))
        if importance_weights is not None:
            importance_weights = jnp.asarray(importance_weights)

        if mean is None:
            mean = weighted_mean(eks, importance_weights)
        else:
            mean = jnp.asarray(mean)
            mean = mean.astype(jnp.result_type(eks, mean, jnp.float64))
        if var is None:
            var = weighted_var(eks, importance_weights, mean=mean)
        var = float(jnp.real(var))

        eks_c = eks - mean
        if importance_weights is not None:
            data = eks_c * jnp.sqrt(importance_weights)
            # Ad hoc error bars for the weighted case: spread of the
            # reweighted residuals, not an effective-sample-size estimate.
            s = jnp.real(data * importance_weights)
            std_of_mean = float(jnp.std(s))
            std_of_var = float(jnp.std(s * s))
        else:
            data = eks_c
            std_of_mean = math.sqrt(var)
            std_of_var = float(jnp.std(jnp.real(eks_c * jnp.conj(eks_c)), ddof=1))

        return cls(data, mean, std_of_mean, var, std_of_var, importance_weights)

    def __len__(self) -> int:
        return int(self.data.shape[0])

    @property
    def std(self) -> float:
        return math.sqrt(self.var)

    @property
    def energy_error(self) -> float:
        """Standard error of the mean energy."""
        return self.std_of_mean / math.sqrt(len(self))

    @property
    def energy_var_error(self) -> float:
        """Standard error of the energy variance."""
        return self.std_of_var / math.sqrt(len(self))

    @property
    def is_complex(self) -> bool:
        return jnp.iscomplexobj(self.data)

    def get_importance_weights(self) -> jax.Array:
        if self.importance_weights is None:
            return jnp.ones((len(self),), dtype=jnp.float64)
        return self.importance_weights

    def centered(self, mode: str = "importance_sqrt") -> jax.Array:
        """Centered energies in the requested importance representation.

        ``"importance_sqrt"`` is the stored ``(E - mean) * sqrt(w)``,
        ``"importance"`` is ``(E - mean) * w`` and ``"no_importance"`` is
        ``E - mean``.
        """
        check_centering_mode(mode)
        if mode == "importance_sqrt":
            return self.data
        sqrt_w = jnp.sqrt(self.get_importance_weights())
        if mode == "importance":
            return self.data * sqrt_w
        return self.data / sqrt_w

    def uncentered(self) -> jax.Array:
        """Reconstruct the sampled local energies."""
        return self.centered("no_importance") + self.mean

    def __repr__(self) -> str:
        mean = float(jnp.real(self.mean))
        e_str, e_err = _format_with_error(mean, self.energy_error)
        v_str, v_err = _format_with_error(self.var, self.energy_var_error)
        return (
            f"EnergySummary(E = {e_str} ± {e_err}, "
            f"var(E) = {v_str} ± {v_err}, Nₛ={len(self)})"
        )
