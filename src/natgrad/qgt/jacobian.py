"""Centered, importance-weighted Jacobian of log-amplitude derivatives."""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

from dataclasses import dataclass

import jax
import jax.numpy as jnp
import numpy as np
from plum import dispatch

from natgrad.stats.energy import check_centering_mode
from natgrad.stats.weighted import weighted_mean

__all__ = [
    "Jacobian",
    "as_matrix",
    "dense_T",
]


@dispatch
def as_matrix(oks: jax.Array | np.ndarray) -> jax.Array:
    """Stack per-sample log-derivatives into an (n_samples, n_params) array."""
    oks = jnp.asarray(oks)
    if oks.ndim != 2:
        raise ValueError(f"Oks must be a 2D (n_samples, n_params) array, got shape {oks.shape}")
    return oks


@dispatch
def as_matrix(oks: list | tuple) -> jax.Array:
    return jnp.stack([jnp.asarray(ok).reshape(-1) for ok in oks], axis=0)


@dataclass(frozen=True)
class Jacobian:
    """Jacobian O_k(x) = d log psi(x) / d theta_k, shape (n_samples, n_params).

    ``data`` holds ``(O - <O>) * sqrt(w)`` row by row and ``data_mean`` the
    uncentered column mean <O>. Without importance weights every centering
    mode returns ``data`` since sqrt(1) = 1.
    """

    data: jax.Array
    data_mean: jax.Array
    importance_weights: jax.Array | None = None

    @classmethod
    def from_samples(
        cls,
        oks,
        *,
        importance_weights=None,
        mean=None,
    ) -> "Jacobian":
        """Center (and reweight) per-sample log-derivatives.

        Args:
            oks: (n_samples, n_params) array or a sequence of per-sample
                parameter vectors.
            importance_weights: Per-sample weights normalized to mean 1.
            mean: Precomputed column mean, used verbatim if given.
        """
        m = as_matrix(oks)
        if importance_weights is not None:
            importance_weights = jnp.asarray(importance_weights)
            if importance_weights.shape != (m.shape[0],):
                raise ValueError(
                    f"importance_weights must have shape ({m.shape[0]},), "
                    f"got {importance_weights.shape}"
                )
        if mean is None:
            data_mean = weighted_mean(m, importance_weights)
        else:
            data_mean = jnp.asarray(mean).reshape(-1)
            data_mean = data_mean.astype(jnp.result_type(m, data_mean, jnp.float64))
        data = m - data_mean[None, :]
        if importance_weights is not None:
            data = data * jnp.sqrt(importance_weights)[:, None]
        return cls(data, data_mean, importance_weights)

    @property
    def shape(self) -> tuple[int, int]:
        return tuple(self.data.shape)

    @property
    def n_samples(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_parameters(self) -> int:
        return int(self.data.shape[1])

    @property
    def mean(self) -> jax.Array:
        return self.data_mean

    def __len__(self) -> int:
        return self.n_samples

    def get_importance_weights(self) -> jax.Array:
        if self.importance_weights is None:
            return jnp.ones((self.n_samples,), dtype=jnp.float64)
        return self.importance_weights

    def centered(self, mode: str = "importance_sqrt") -> jax.Array:
        """Centered Jacobian in the requested importance representation."""
        check_centering_mode(mode)
        if self.importance_weights is None or mode == "importance_sqrt":
            return self.data
        sqrt_w = jnp.sqrt(self.importance_weights)[:, None]
        if mode == "importance":
            return self.data * sqrt_w
        return self.data / sqrt_w

    def uncentered(self) -> jax.Array:
        """Reconstruct the raw per-sample log-derivatives."""
        return self.centered("no_importance") + self.data_mean[None, :]


@jax.jit
def _gram_rows(J: jax.Array) -> jax.Array:
    return jnp.matmul(J, J.conj().T, precision=jax.lax.Precision.HIGHEST)


def dense_T(jac: Jacobian) -> jax.Array:
    """Sample-space Gram matrix ``J J^H`` of shape (n_samples, n_samples)."""
    return _gram_rows(jac.centered())
