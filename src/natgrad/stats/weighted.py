"""Weighted sample statistics along the sample axis.

All reductions run over axis 0. ``weights=None`` means uniform weight 1, so
the unweighted results are the weighted ones evaluated with all-ones weights.
"""
from __future__ import annotations

from natgrad import config  # noqa: F401 - JAX config must be imported first

import jax
import jax.numpy as jnp

__all__ = [
    "weighted_mean",
    "weighted_var",
    "weighted_mean_and_var",
    "normalize_weights",
]


def _broadcast_weights(x: jax.Array, weights: jax.Array | None) -> jax.Array:
    if weights is None:
        return jnp.ones((x.shape[0],) + (1,) * (x.ndim - 1), dtype=jnp.float64)
    weights = jnp.asarray(weights)
    if weights.shape != (x.shape[0],):
        raise ValueError(
            f"weights must have shape ({x.shape[0]},), got {weights.shape}"
        )
    return weights.reshape((x.shape[0],) + (1,) * (x.ndim - 1))


def weighted_mean(x, weights=None) -> jax.Array:
    """Weighted mean ``sum(w x) / sum(w)`` over samples."""
    x = jnp.asarray(x)
    w = _broadcast_weights(x, weights)
    return jnp.sum(w * x, axis=0) / jnp.sum(w, axis=0)


def weighted_var(x, weights=None, *, mean=None) -> jax.Array:
    """Weighted variance ``sum(w |x - mean|^2) / (sum(w) - 1)``.

    With uniform weights this is the Bessel-corrected variance. The result is
    real for complex input.
    """
    x = jnp.asarray(x)
    w = _broadcast_weights(x, weights)
    if mean is None:
        mean = jnp.sum(w * x, axis=0) / jnp.sum(w, axis=0)
    dev = x - mean
    sq = jnp.real(dev * jnp.conj(dev))
    return jnp.sum(w * sq, axis=0) / (jnp.sum(w, axis=0) - 1)


def weighted_mean_and_var(x, weights=None) -> tuple[jax.Array, jax.Array]:
    """Return ``(weighted_mean(x, weights), weighted_var(x, weights))``."""
    mean = weighted_mean(x, weights)
    return mean, weighted_var(x, weights, mean=mean)


def normalize_weights(weights) -> jax.Array:
    """Rescale importance weights to mean 1. Returns a new array."""
    weights = jnp.asarray(weights, dtype=jnp.float64)
    return weights / jnp.mean(weights)
